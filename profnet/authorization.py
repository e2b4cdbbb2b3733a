"""
Messaging authorization gate.

A sender may message a receiver that is within a bounded number of
connection hops. New accounts get a wider bound; the "new" classification
comes from the record store.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from profnet.config import settings
from profnet.errors import Forbidden, InvalidRequest, NotFound
from profnet.graph import distance
from profnet.repository import RecordStore

logger = logging.getLogger(__name__)

OUTSIDE_NETWORK_REASON = "outside allowed network distance"


@dataclass(frozen=True)
class MessagingPolicy:
    """Reachability caps in edges; both bounds are inclusive."""

    base_cap: int = 3
    relaxed_cap: int = 5

    def __post_init__(self):
        if self.base_cap < 1:
            raise ValueError("base_cap must be at least 1")
        if self.relaxed_cap < self.base_cap:
            raise ValueError("relaxed_cap must be >= base_cap")

    @classmethod
    def from_settings(cls) -> "MessagingPolicy":
        return cls(
            base_cap=settings.BASE_REACHABILITY_CAP,
            relaxed_cap=settings.NEW_ACCOUNT_REACHABILITY_CAP,
        )

    def cap_for(self, is_new_account: bool) -> int:
        return self.relaxed_cap if is_new_account else self.base_cap


@dataclass(frozen=True)
class AuthorizationDecision:
    sender: str
    receiver: str
    cap: int
    distance: Optional[int]


def authorize(
    store: RecordStore, sender: str, receiver: str, policy: MessagingPolicy
) -> AuthorizationDecision:
    """
    Decide whether ``sender`` may message ``receiver``.

    Returns the decision on success; every denial raises.

    Raises:
        InvalidRequest: sender and receiver are the same user
        NotFound: either user does not exist
        Forbidden: receiver is farther than the sender's cap
    """
    if sender == receiver:
        raise InvalidRequest("cannot send a message to yourself")
    for user_id in (sender, receiver):
        if not store.user_exists(user_id):
            raise NotFound(f"user {user_id} not found")

    is_new = store.is_new_account(sender)
    cap = policy.cap_for(is_new)

    if store.are_connected(sender, receiver):
        return AuthorizationDecision(sender, receiver, cap, 1)

    hops = distance(store, sender, receiver, cap)
    if hops is None:
        logger.warning(
            f"Message denied: {sender} -> {receiver} beyond {cap} hops (new_account={is_new})"
        )
        raise Forbidden(OUTSIDE_NETWORK_REASON)

    logger.debug(f"Message authorized: {sender} -> {receiver} at {hops} hops (cap {cap})")
    return AuthorizationDecision(sender, receiver, cap, hops)
