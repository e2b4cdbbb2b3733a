"""
Friend request workflow.

A request starts pending and ends either accepted (which creates exactly
one Connection edge) or rejected. Both end states are terminal and kept
for audit; a rejected pair is re-requested only through resend_request,
which always creates a fresh record.
"""

import logging
from typing import List

from profnet.errors import Conflict, InvalidRequest, NotFound, Unauthorized
from profnet.metrics import record_friend_request_event
from profnet.models import FriendRequest, RequestState
from profnet.repository import RecordStore

logger = logging.getLogger(__name__)


def _check_can_request(store: RecordStore, from_user: str, to_user: str) -> None:
    if from_user == to_user:
        raise InvalidRequest("cannot send a friend request to yourself")
    for user_id in (from_user, to_user):
        if not store.user_exists(user_id):
            raise NotFound(f"user {user_id} not found")
    if store.are_connected(from_user, to_user):
        raise InvalidRequest(f"{from_user} and {to_user} are already connected")
    if (
        store.find_pending_request(from_user, to_user) is not None
        or store.find_pending_request(to_user, from_user) is not None
    ):
        raise InvalidRequest(f"a pending request already exists between {from_user} and {to_user}")


def send_request(store: RecordStore, from_user: str, to_user: str) -> FriendRequest:
    """
    Create a pending friend request from ``from_user`` to ``to_user``.

    Raises:
        InvalidRequest: self request, already connected, a pending request
            in either direction, or a previous request was rejected
        NotFound: either user does not exist
        Conflict: a concurrent request for the same pair was stored first
    """
    def work() -> FriendRequest:
        _check_can_request(store, from_user, to_user)
        previous = store.latest_request(from_user, to_user)
        if previous is not None and previous.state == RequestState.REJECTED.value:
            raise InvalidRequest(
                f"request from {from_user} to {to_user} was rejected; use resend"
            )
        return store.insert_friend_request(from_user, to_user)

    request = store.atomic(work, "send_request")
    logger.info(f"Friend request {request.id} sent: {from_user} -> {to_user}")
    record_friend_request_event("sent")
    return request


def resend_request(store: RecordStore, from_user: str, to_user: str) -> FriendRequest:
    """
    Create a fresh pending request after the previous one was rejected.

    The rejected record is left untouched.
    """
    def work() -> FriendRequest:
        _check_can_request(store, from_user, to_user)
        previous = store.latest_request(from_user, to_user)
        if previous is None or previous.state != RequestState.REJECTED.value:
            raise InvalidRequest(
                f"no rejected request from {from_user} to {to_user} to resend"
            )
        return store.insert_friend_request(from_user, to_user)

    request = store.atomic(work, "resend_request")
    logger.info(f"Friend request {request.id} re-sent: {from_user} -> {to_user}")
    record_friend_request_event("resent")
    return request


def respond(store: RecordStore, request_id: int, responder: str, accept: bool) -> FriendRequest:
    """
    Accept or reject a pending request addressed to ``responder``.

    Accepting moves the request to accepted and inserts the connection in
    the same transaction. The store allows one pending request per pair,
    so no reverse request is left behind.

    Raises:
        NotFound: request does not exist or is no longer pending
        Unauthorized: responder is not the recipient
        Conflict: another session responded first
    """
    def work() -> FriendRequest:
        request = store.get_friend_request(request_id)
        if request is None or request.state != RequestState.PENDING.value:
            raise NotFound(f"pending friend request {request_id} not found")
        if request.to_user != responder:
            raise Unauthorized(f"{responder} cannot respond to request {request_id}")

        new_state = RequestState.ACCEPTED if accept else RequestState.REJECTED
        if not store.update_friend_request_state(request_id, new_state):
            raise Conflict(f"friend request {request_id} was answered concurrently")

        if accept:
            store.insert_connection(request.from_user, request.to_user)
        return request

    request = store.atomic(work, "respond")
    event = "accepted" if accept else "rejected"
    logger.info(f"Friend request {request_id} {event} by {responder}")
    record_friend_request_event(event)
    return request


def unfriend(store: RecordStore, user_id: str, other: str) -> None:
    """Remove the connection between two users."""
    def work() -> None:
        if not store.delete_connection(user_id, other):
            raise NotFound(f"{user_id} and {other} are not connected")

    store.atomic(work, "unfriend")
    logger.info(f"Connection removed: {user_id} <-> {other}")
    record_friend_request_event("unfriended")


def list_incoming(store: RecordStore, user_id: str) -> List[FriendRequest]:
    return store.list_pending_requests(to_user=user_id)


def list_outgoing(store: RecordStore, user_id: str) -> List[FriendRequest]:
    return store.list_pending_requests(from_user=user_id)
