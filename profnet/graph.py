"""
Connection graph queries.

The graph is never materialized: each query walks Connection rows through
the record store, one batched neighbour lookup per BFS frontier.
"""

import logging
from typing import Optional, Set

from profnet.errors import InvalidRequest
from profnet.metrics import record_distance_query
from profnet.repository import RecordStore

logger = logging.getLogger(__name__)


def neighbours(store: RecordStore, user_id: str) -> Set[str]:
    """Users directly connected to ``user_id`` (the friend list)."""
    return store.get_connections(user_id)


def distance(store: RecordStore, a: str, b: str, max_depth: int) -> Optional[int]:
    """
    Number of edges on the shortest path between ``a`` and ``b``.

    The search stops after ``max_depth`` frontiers, so the result is
    always ``<= max_depth``. Returns None when ``b`` is not reachable
    within that bound, or when either user does not exist.
    """
    if max_depth < 0:
        raise InvalidRequest("max_depth must be non-negative")

    if not store.user_exists(a) or not store.user_exists(b):
        logger.debug(f"Distance {a} -> {b}: unknown user")
        record_distance_query(reachable=False)
        return None

    if a == b:
        record_distance_query(reachable=True)
        return 0

    visited = {a}
    frontier = {a}
    depth = 0
    while frontier and depth < max_depth:
        depth += 1
        frontier = store.get_connections_of_many(frontier) - visited
        if b in frontier:
            logger.debug(f"Distance {a} -> {b}: {depth}")
            record_distance_query(reachable=True)
            return depth
        visited |= frontier

    logger.debug(f"Distance {a} -> {b}: unreachable within {max_depth}")
    record_distance_query(reachable=False)
    return None


def is_reachable(store: RecordStore, a: str, b: str, max_depth: int) -> bool:
    return distance(store, a, b, max_depth) is not None
