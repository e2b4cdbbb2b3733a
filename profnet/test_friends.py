"""
Tests for the friend request workflow.

Tests cover:
- Request validation (self, connected, duplicate pending, unknown users)
- Accept creates exactly one canonical connection
- Reject is terminal and re-requesting needs resend
- Responder authorization
- Crossing requests and concurrent accepts
"""

import threading

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from profnet import friends
from profnet.errors import Conflict, InvalidRequest, NotFound, Unauthorized
from profnet.models import Connection, FriendRequest, RequestState, User
from profnet.repository import RecordStore
from profnet.utils import to_iso, utc_now


def connection_count(store) -> int:
    return store.db.scalar(select(func.count(Connection.id)))


@pytest.fixture
def users(add_users):
    add_users("alice", "bob", "carol")


class TestSendRequest:
    """Validation performed before a request is stored."""

    def test_creates_pending_request(self, store, users):
        request = friends.send_request(store, "alice", "bob")

        assert request.id is not None
        assert request.state == RequestState.PENDING.value
        assert request.from_user == "alice"
        assert request.to_user == "bob"
        assert request.responded_at is None

    def test_self_request_rejected(self, store, users):
        with pytest.raises(InvalidRequest):
            friends.send_request(store, "alice", "alice")

    def test_already_connected_rejected(self, store, users, connect):
        connect("alice", "bob")
        with pytest.raises(InvalidRequest):
            friends.send_request(store, "alice", "bob")
        with pytest.raises(InvalidRequest):
            friends.send_request(store, "bob", "alice")

    def test_duplicate_pending_rejected(self, store, users):
        friends.send_request(store, "alice", "bob")
        with pytest.raises(InvalidRequest):
            friends.send_request(store, "alice", "bob")

    def test_reverse_pending_rejected(self, store, users):
        """A pending request in either direction blocks a new one."""
        friends.send_request(store, "alice", "bob")
        with pytest.raises(InvalidRequest):
            friends.send_request(store, "bob", "alice")

    def test_crossing_pending_insert_conflicts(self, store, users):
        """The store itself refuses a second pending request for a pair."""
        forward = store.atomic(lambda: store.insert_friend_request("alice", "bob"), "seed")

        with pytest.raises(Conflict):
            store.atomic(lambda: store.insert_friend_request("bob", "alice"), "seed")

        pending = friends.list_outgoing(store, "alice") + friends.list_outgoing(store, "bob")
        assert [r.id for r in pending] == [forward.id]
        assert (forward.pair_low, forward.pair_high) == ("alice", "bob")

    def test_unknown_recipient(self, store, users):
        with pytest.raises(NotFound):
            friends.send_request(store, "alice", "nobody")

    def test_failed_request_writes_nothing(self, store, users, connect):
        connect("alice", "bob")
        with pytest.raises(InvalidRequest):
            friends.send_request(store, "alice", "bob")
        assert friends.list_outgoing(store, "alice") == []


class TestAccept:
    """Accepting turns a request into a connection."""

    def test_accept_creates_one_edge(self, store, users):
        request = friends.send_request(store, "bob", "alice")
        accepted = friends.respond(store, request.id, "alice", accept=True)

        assert accepted.state == RequestState.ACCEPTED.value
        assert accepted.responded_at is not None
        assert store.are_connected("alice", "bob")
        assert connection_count(store) == 1

    def test_edge_is_canonical(self, store, users):
        request = friends.send_request(store, "bob", "alice")
        friends.respond(store, request.id, "alice", accept=True)

        edge = store.db.scalars(select(Connection)).one()
        assert (edge.user_a, edge.user_b) == ("alice", "bob")

    def test_accepted_request_is_terminal(self, store, users):
        request = friends.send_request(store, "alice", "bob")
        friends.respond(store, request.id, "bob", accept=True)

        with pytest.raises(NotFound):
            friends.respond(store, request.id, "bob", accept=True)
        with pytest.raises(NotFound):
            friends.respond(store, request.id, "bob", accept=False)
        assert connection_count(store) == 1

    def test_only_recipient_may_respond(self, store, users):
        request = friends.send_request(store, "alice", "bob")

        with pytest.raises(Unauthorized):
            friends.respond(store, request.id, "alice", accept=True)
        with pytest.raises(Unauthorized):
            friends.respond(store, request.id, "carol", accept=True)
        assert store.get_friend_request(request.id).state == RequestState.PENDING.value
        assert connection_count(store) == 0

    def test_unknown_request(self, store, users):
        with pytest.raises(NotFound):
            friends.respond(store, 999, "bob", accept=True)

    def test_lost_compare_and_set_raises_conflict(self, store, users, monkeypatch):
        """Another session answered between the read and the state update."""
        request = friends.send_request(store, "alice", "bob")
        monkeypatch.setattr(store, "update_friend_request_state", lambda request_id, new_state: False)

        with pytest.raises(Conflict):
            friends.respond(store, request.id, "bob", accept=True)

        assert connection_count(store) == 0
        assert not store.are_connected("alice", "bob")
        assert store.get_friend_request(request.id).state == RequestState.PENDING.value


class TestReject:
    """Rejection is terminal; a new request is a fresh record."""

    def test_reject_creates_no_edge(self, store, users):
        request = friends.send_request(store, "alice", "bob")
        rejected = friends.respond(store, request.id, "bob", accept=False)

        assert rejected.state == RequestState.REJECTED.value
        assert not store.are_connected("alice", "bob")

    def test_plain_resubmission_refused(self, store, users):
        request = friends.send_request(store, "alice", "bob")
        friends.respond(store, request.id, "bob", accept=False)

        with pytest.raises(InvalidRequest):
            friends.send_request(store, "alice", "bob")

    def test_resend_creates_fresh_record(self, store, users):
        request = friends.send_request(store, "alice", "bob")
        friends.respond(store, request.id, "bob", accept=False)

        fresh = friends.resend_request(store, "alice", "bob")

        assert fresh.id != request.id
        assert fresh.state == RequestState.PENDING.value
        assert store.get_friend_request(request.id).state == RequestState.REJECTED.value

        friends.respond(store, fresh.id, "bob", accept=True)
        assert store.are_connected("alice", "bob")

    def test_resend_requires_rejection(self, store, users):
        with pytest.raises(InvalidRequest):
            friends.resend_request(store, "alice", "bob")

    def test_reverse_direction_unaffected_by_rejection(self, store, users):
        """Bob rejecting Alice does not stop Bob from asking Alice."""
        request = friends.send_request(store, "alice", "bob")
        friends.respond(store, request.id, "bob", accept=False)

        reverse = friends.send_request(store, "bob", "alice")
        assert reverse.state == RequestState.PENDING.value


class TestListsAndUnfriend:

    def test_incoming_and_outgoing(self, store, users):
        friends.send_request(store, "alice", "bob")
        friends.send_request(store, "carol", "bob")

        incoming = friends.list_incoming(store, "bob")
        assert [r.from_user for r in incoming] == ["alice", "carol"]
        assert [r.to_user for r in friends.list_outgoing(store, "alice")] == ["bob"]
        assert friends.list_incoming(store, "alice") == []

    def test_unfriend_removes_edge(self, store, users, connect):
        connect("alice", "bob")
        friends.unfriend(store, "bob", "alice")

        assert not store.are_connected("alice", "bob")
        with pytest.raises(NotFound):
            friends.unfriend(store, "alice", "bob")

    def test_request_allowed_after_unfriend(self, store, users):
        request = friends.send_request(store, "alice", "bob")
        friends.respond(store, request.id, "bob", accept=True)
        friends.unfriend(store, "alice", "bob")

        again = friends.send_request(store, "alice", "bob")
        assert again.state == RequestState.PENDING.value


def run_together(*calls):
    """Start one thread per (target, args) pair behind a shared barrier."""
    barrier = threading.Barrier(len(calls))

    def wrapped(target, args):
        barrier.wait()
        target(*args)

    threads = [threading.Thread(target=wrapped, args=call) for call in calls]
    for t in threads:
        t.start()
    for t in threads:
        t.join()


@pytest.fixture
def session_factory(file_engine):
    Session = sessionmaker(bind=file_engine, autoflush=False)
    created_at = to_iso(utc_now())
    with Session() as db:
        db.add_all([
            User(user_id=uid, name=uid, email=f"{uid}@example.com", created_at=created_at)
            for uid in ("alice", "bob")
        ])
        db.commit()
    return Session


class TestConcurrentRequests:
    """Alice and Bob ask each other at the same moment."""

    def test_one_pending_request_survives(self, session_factory):
        outcomes = []

        def send(from_user, to_user):
            with session_factory() as db:
                store = RecordStore(db, retry_limit=10)
                try:
                    outcomes.append(friends.send_request(store, from_user, to_user).state)
                except (InvalidRequest, Conflict) as e:
                    outcomes.append(e.code)

        run_together((send, ("alice", "bob")), (send, ("bob", "alice")))

        assert len(outcomes) == 2
        assert outcomes.count(RequestState.PENDING.value) == 1
        with session_factory() as db:
            pending = db.scalar(
                select(func.count(FriendRequest.id)).where(
                    FriendRequest.state == RequestState.PENDING.value
                )
            )
            assert pending == 1


class TestConcurrentAccept:
    """Two sessions of the recipient accept the same request at once."""

    def test_exactly_one_edge(self, session_factory):
        with session_factory() as db:
            seed = RecordStore(db)
            request_id = seed.atomic(lambda: seed.insert_friend_request("alice", "bob"), "seed").id

        outcomes = []

        def accept():
            with session_factory() as db:
                store = RecordStore(db, retry_limit=10)
                try:
                    outcomes.append(friends.respond(store, request_id, "bob", accept=True).state)
                except (NotFound, Conflict) as e:
                    outcomes.append(e.code)

        run_together((accept, ()), (accept, ()))

        assert len(outcomes) == 2
        assert outcomes.count(RequestState.ACCEPTED.value) == 1
        with session_factory() as db:
            assert db.scalar(select(func.count(Connection.id))) == 1
            assert db.get(FriendRequest, request_id).state == RequestState.ACCEPTED.value
