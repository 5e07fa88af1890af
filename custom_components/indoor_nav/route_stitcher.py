"""Splice a short return leg onto the unfinished remainder of a route."""
from __future__ import annotations

import logging
import uuid

from .models import Route

_LOGGER = logging.getLogger(__name__)


def combine(return_route: Route, original_route: Route, rejoin_location_id: str) -> Route | None:
    """
    Join return_route (ending at rejoin_location_id) with original_route after that node.

    Remaining distance and duration of the original are pro-rated by the share
    of path nodes left after the rejoin point. Returns None when the rejoin
    node is not on the original route.
    """
    idx = original_route.index_of(rejoin_location_id)
    if idx < 0:
        _LOGGER.debug(
            "Rejoin location %s is not on route %s", rejoin_location_id, original_route.id
        )
        return None

    total_nodes = len(original_route.path)
    share = (total_nodes - idx - 1) / total_nodes

    path = return_route.path + original_route.path[idx + 1:]
    kept = tuple(
        instruction
        for instruction in original_route.instructions
        if original_route.index_of(instruction.from_location_id) > idx
    )

    return Route(
        id=f"combined_{uuid.uuid4().hex[:12]}",
        start_location_id=return_route.start_location_id,
        end_location_id=original_route.end_location_id,
        path=path,
        estimated_distance=return_route.estimated_distance + original_route.estimated_distance * share,
        estimated_duration=return_route.estimated_duration + original_route.estimated_duration * share,
        instructions=return_route.instructions + kept,
    )
