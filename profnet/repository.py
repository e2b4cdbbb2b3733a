"""
Record store used by the core operations.

RecordStore wraps a single SQLAlchemy session and exposes the read/write
operations the graph, friend-request workflow and message lifecycle need.
Every core operation receives a RecordStore explicitly; nothing here holds
process-wide state.
"""

import logging
import time
from datetime import timedelta
from typing import Callable, Iterable, List, Optional, Set, TypeVar

from sqlalchemy import and_, delete, insert, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from profnet.config import settings
from profnet.errors import Conflict, InvalidRequest, NotFound
from profnet.models import Connection, DeleteStatus, FriendRequest, Message, RequestState, User
from profnet.storage import check_db_health
from profnet.utils import canonical_pair, from_iso, to_iso, utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Seconds to wait before retrying after a transient store error, per attempt
RETRY_BACKOFF_SECONDS = 0.05


class RecordStore:
    """
    Relational store for users, connections, friend requests and messages.

    Args:
        db: SQLAlchemy session owned by the caller
        new_account_max_age_days: accounts younger than this are "new"
        retry_limit: attempts for a unit of work hitting a transient error
        clock: returns the current aware UTC datetime
    """

    def __init__(
        self,
        db: Session,
        new_account_max_age_days: Optional[int] = None,
        retry_limit: Optional[int] = None,
        clock: Callable = utc_now,
    ):
        self.db = db
        self.new_account_max_age_days = (
            settings.NEW_ACCOUNT_MAX_AGE_DAYS
            if new_account_max_age_days is None
            else new_account_max_age_days
        )
        self.retry_limit = settings.STORE_RETRY_LIMIT if retry_limit is None else retry_limit
        self.clock = clock

    def now(self) -> str:
        return to_iso(self.clock())

    # =========================================================================
    # Units of work
    # =========================================================================

    def atomic(self, work: Callable[[], T], label: str) -> T:
        """
        Run ``work`` and commit it as one transaction.

        Transient errors (locked database, serialization failures) are
        rolled back and retried up to ``retry_limit`` times; exhaustion is
        reported as Conflict. Integrity violations mean a concurrent writer
        won a uniqueness race and are reported as Conflict right away.
        Domain errors roll back and propagate unchanged.
        """
        for attempt in range(1, self.retry_limit + 1):
            try:
                result = work()
                self.db.commit()
                return result
            except OperationalError as e:
                self.db.rollback()
                logger.warning(
                    f"Transient store error in {label} "
                    f"(attempt {attempt}/{self.retry_limit}): {e}"
                )
                if attempt < self.retry_limit:
                    time.sleep(RETRY_BACKOFF_SECONDS * attempt)
            except IntegrityError as e:
                self.db.rollback()
                logger.warning(f"Integrity conflict in {label}: {e.orig}")
                raise Conflict(f"{label} conflicted with a concurrent update")
            except Exception:
                self.db.rollback()
                raise
        raise Conflict(f"{label} could not be applied after {self.retry_limit} attempts")

    def check_health(self) -> bool:
        return check_db_health(self.db)

    # =========================================================================
    # Users
    # =========================================================================

    def get_user(self, user_id: str) -> Optional[User]:
        return self.db.get(User, user_id)

    def user_exists(self, user_id: str) -> bool:
        return self.db.scalar(select(User.user_id).where(User.user_id == user_id)) is not None

    def create_user(
        self,
        user_id: str,
        name: str,
        email: str,
        birthdate: Optional[str] = None,
        credential_ref: Optional[str] = None,
        created_at: Optional[str] = None,
    ) -> User:
        """Insert a new user; fails with InvalidRequest if the id is taken."""
        if self.user_exists(user_id):
            raise InvalidRequest(f"user {user_id} already exists")
        user = User(
            user_id=user_id,
            name=name,
            email=email,
            birthdate=birthdate,
            credential_ref=credential_ref,
            created_at=created_at or self.now(),
        )
        self.db.add(user)
        self.db.flush()
        logger.info(f"User created: {user_id}")
        return user

    def is_new_account(self, user_id: str) -> bool:
        """
        Classify an account as new when it was created less than
        ``new_account_max_age_days`` ago.
        """
        created_at = self.db.scalar(select(User.created_at).where(User.user_id == user_id))
        if created_at is None:
            raise NotFound(f"user {user_id} not found")
        age = self.clock() - from_iso(created_at)
        return age < timedelta(days=self.new_account_max_age_days)

    # =========================================================================
    # Connections
    # =========================================================================

    def get_connections(self, user_id: str) -> Set[str]:
        return self.get_connections_of_many([user_id])

    def get_connections_of_many(self, user_ids: Iterable[str]) -> Set[str]:
        """Union of the neighbours of every user in ``user_ids``."""
        members = set(user_ids)
        if not members:
            return set()
        rows = self.db.execute(
            select(Connection.user_a, Connection.user_b).where(
                or_(Connection.user_a.in_(members), Connection.user_b.in_(members))
            )
        ).all()
        neighbours = set()
        for user_a, user_b in rows:
            if user_a in members:
                neighbours.add(user_b)
            if user_b in members:
                neighbours.add(user_a)
        return neighbours

    def are_connected(self, a: str, b: str) -> bool:
        user_a, user_b = canonical_pair(a, b)
        found = self.db.scalar(
            select(Connection.id).where(
                Connection.user_a == user_a, Connection.user_b == user_b
            )
        )
        return found is not None

    def insert_connection(self, a: str, b: str) -> bool:
        """
        Insert the canonical edge for ``{a, b}``.

        Idempotent: returns False when the edge already exists, including
        when a concurrent transaction inserted it first.
        """
        if a == b:
            raise InvalidRequest("a user cannot be connected to themselves")
        user_a, user_b = canonical_pair(a, b)
        values = {"user_a": user_a, "user_b": user_b, "created_at": self.now()}
        dialect = self.db.get_bind().dialect.name

        if dialect == "sqlite":
            stmt = sqlite.insert(Connection).values(**values).on_conflict_do_nothing()
        elif dialect == "postgresql":
            stmt = postgresql.insert(Connection).values(**values).on_conflict_do_nothing()
        else:
            if self.are_connected(a, b):
                return False
            stmt = insert(Connection).values(**values)

        created = self.db.execute(stmt).rowcount == 1
        logger.debug(f"Connection {user_a}<->{user_b}: {'created' if created else 'exists'}")
        return created

    def delete_connection(self, a: str, b: str) -> bool:
        user_a, user_b = canonical_pair(a, b)
        result = self.db.execute(
            delete(Connection).where(
                Connection.user_a == user_a, Connection.user_b == user_b
            )
        )
        return result.rowcount == 1

    # =========================================================================
    # Friend requests
    # =========================================================================

    def insert_friend_request(self, from_user: str, to_user: str) -> FriendRequest:
        """
        Add a pending request and flush it.

        A second pending request for the same pair, in either direction,
        raises IntegrityError on flush.
        """
        pair_low, pair_high = canonical_pair(from_user, to_user)
        request = FriendRequest(
            from_user=from_user,
            to_user=to_user,
            pair_low=pair_low,
            pair_high=pair_high,
            state=RequestState.PENDING.value,
            created_at=self.now(),
        )
        self.db.add(request)
        self.db.flush()
        return request

    def get_friend_request(self, request_id: int) -> Optional[FriendRequest]:
        return self.db.scalars(select(FriendRequest).where(FriendRequest.id == request_id)).first()

    def update_friend_request_state(self, request_id: int, new_state: RequestState) -> bool:
        """
        Compare-and-set a pending request to ``new_state``.

        Returns False when the request is no longer pending.
        """
        result = self.db.execute(
            update(FriendRequest)
            .where(
                FriendRequest.id == request_id,
                FriendRequest.state == RequestState.PENDING.value,
            )
            .values(state=new_state.value, responded_at=self.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def find_pending_request(self, from_user: str, to_user: str) -> Optional[int]:
        return self.db.scalar(
            select(FriendRequest.id).where(
                FriendRequest.from_user == from_user,
                FriendRequest.to_user == to_user,
                FriendRequest.state == RequestState.PENDING.value,
            )
        )

    def latest_request(self, from_user: str, to_user: str) -> Optional[FriendRequest]:
        return self.db.scalars(
            select(FriendRequest)
            .where(FriendRequest.from_user == from_user, FriendRequest.to_user == to_user)
            .order_by(FriendRequest.id.desc())
            .limit(1)
        ).first()

    def list_pending_requests(
        self, to_user: Optional[str] = None, from_user: Optional[str] = None
    ) -> List[FriendRequest]:
        query = select(FriendRequest).where(FriendRequest.state == RequestState.PENDING.value)
        if to_user is not None:
            query = query.where(FriendRequest.to_user == to_user)
        if from_user is not None:
            query = query.where(FriendRequest.from_user == from_user)
        return list(self.db.scalars(query.order_by(FriendRequest.created_at, FriendRequest.id)))

    # =========================================================================
    # Messages
    # =========================================================================

    def insert_message(self, sender: str, receiver: str, content: str, sent_at: str) -> int:
        message = Message(
            sender=sender,
            receiver=receiver,
            content=content,
            sent_at=sent_at,
            status="delivered",
            delete_status=int(DeleteStatus.NONE),
        )
        self.db.add(message)
        self.db.flush()
        return message.id

    def get_message(self, message_id: int) -> Optional[Message]:
        return self.db.scalars(select(Message).where(Message.id == message_id)).first()

    def update_message_delete_bits(self, message_id: int, bit: DeleteStatus) -> Optional[DeleteStatus]:
        """
        OR ``bit`` into the message's delete status in a single statement.

        Returns the resulting bits, or None if the row no longer exists.
        """
        result = self.db.execute(
            update(Message)
            .where(Message.id == message_id)
            .values(delete_status=Message.delete_status.op("|")(int(bit)))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        bits = self.db.scalar(select(Message.delete_status).where(Message.id == message_id))
        return DeleteStatus(bits)

    def purge_message(self, message_id: int) -> bool:
        """
        Physically delete a message both parties have deleted.

        Only one caller can observe True for a given message.
        """
        result = self.db.execute(
            delete(Message)
            .where(Message.id == message_id, Message.delete_status == int(DeleteStatus.BOTH))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def query_messages(self, party: str) -> List[Message]:
        """
        Messages ``party`` sent or received and has not deleted,
        ordered by send time (then id) ascending.
        """
        sender_bit = int(DeleteStatus.SENDER)
        receiver_bit = int(DeleteStatus.RECEIVER)
        query = (
            select(Message)
            .where(
                or_(
                    and_(Message.sender == party, Message.delete_status.op("&")(sender_bit) == 0),
                    and_(Message.receiver == party, Message.delete_status.op("&")(receiver_bit) == 0),
                )
            )
            .order_by(Message.sent_at.asc(), Message.id.asc())
        )
        return list(self.db.scalars(query))
