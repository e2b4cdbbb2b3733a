"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.
"""

import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)

from profnet.storage import Base


class DeleteStatus(enum.IntFlag):
    """Per-party delete bits of a message. Bits are only ever set."""

    NONE = 0
    SENDER = 1
    RECEIVER = 2
    BOTH = 3


class RequestState(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class User(Base):
    """
    Network member.

    Table: users
    The credential is an opaque reference owned by the login layer.
    """
    __tablename__ = "users"

    user_id = Column(String, primary_key=True, index=True)
    credential_ref = Column(String, nullable=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    birthdate = Column(String, nullable=True)  # ISO date
    created_at = Column(String, nullable=False)  # Server time ISO-8601


class Connection(Base):
    """
    Accepted acquaintance between two users, stored once per unordered pair.

    Table: connections
    Canonical form: user_a < user_b
    """
    __tablename__ = "connections"
    __table_args__ = (
        UniqueConstraint("user_a", "user_b", name="uq_connection_pair"),
        CheckConstraint("user_a < user_b", name="ck_connection_canonical"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_a = Column(String, ForeignKey("users.user_id"), nullable=False, index=True)
    user_b = Column(String, ForeignKey("users.user_id"), nullable=False, index=True)
    created_at = Column(String, nullable=False)


class FriendRequest(Base):
    """
    Directed friend request.

    Table: friend_requests
    At most one pending row per unordered pair: pair_low/pair_high hold the
    two user ids in sorted order, so crossing requests collide on the same
    partial unique index.
    """
    __tablename__ = "friend_requests"
    __table_args__ = (
        Index(
            "uq_pending_pair",
            "pair_low",
            "pair_high",
            unique=True,
            sqlite_where=text("state = 'pending'"),
            postgresql_where=text("state = 'pending'"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    from_user = Column(String, ForeignKey("users.user_id"), nullable=False, index=True)
    to_user = Column(String, ForeignKey("users.user_id"), nullable=False, index=True)
    pair_low = Column(String, nullable=False)
    pair_high = Column(String, nullable=False)
    state = Column(String, nullable=False, default=RequestState.PENDING.value)
    created_at = Column(String, nullable=False)
    responded_at = Column(String, nullable=True)


class Message(Base):
    """
    Direct message between two users.

    Table: messages
    delete_status holds DeleteStatus bits; the row is purged at BOTH.
    """
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sender = Column(String, ForeignKey("users.user_id"), nullable=False, index=True)
    receiver = Column(String, ForeignKey("users.user_id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    sent_at = Column(String, nullable=False, index=True)  # ISO-8601 UTC string
    status = Column(String, nullable=False, default="delivered")
    delete_status = Column(Integer, nullable=False, default=0)
