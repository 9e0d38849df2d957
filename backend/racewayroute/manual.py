"""Routes pinned by the user instead of found by the solver."""

import math
import re
from dataclasses import replace
from typing import List, Optional, Sequence

from .geometry import COINCIDENT_TOLERANCE, Point3, as_point, distance
from .log import get_logger
from .models import RouteResult, RouteSegment
from .registry import RacewayRegistry

logger = get_logger("manual")

_ID_SEPARATOR = re.compile(r"[>\s]+")
_WAYPOINT_SEPARATOR = re.compile(r"\s*;\s*")


def _field(start: Point3, end: Point3) -> RouteSegment:
    return RouteSegment("field", start, end, distance(start, end))


def _rejection(raceway_id: str, reason: str, message: str, manual_raceway: bool) -> RouteResult:
    return RouteResult.failure(
        message,
        manual=True,
        manual_raceway=manual_raceway,
        error_detail={"raceway_id": raceway_id, "reason": reason},
    )


def _check_raceway(registry, segment, raceway_id, cable_area, allowed_group, manual_raceway) -> Optional[RouteResult]:
    if segment.allowed_cable_group and allowed_group and segment.allowed_cable_group != allowed_group:
        return _rejection(raceway_id, "not_allowed", f"Tray {raceway_id} not allowed", manual_raceway)
    if not registry.has_capacity(segment, cable_area):
        return _rejection(raceway_id, "over_capacity", f"Tray {raceway_id} over capacity", manual_raceway)
    return None


def manual_path_route(
    registry: RacewayRegistry,
    start: Sequence[float],
    end: Sequence[float],
    cable_area: float,
    allowed_group: Optional[str],
    manual_path: str,
) -> Optional[RouteResult]:
    """Route along a typed path.

    ``"T1>T2 T3"`` follows raceways in order; ``"x,y,z;x,y,z"`` visits free-air
    waypoints. Returns None for an empty path.
    """
    path = (manual_path or "").strip()
    if not path:
        return None
    start, end = as_point(start), as_point(end)

    if re.search(r"[a-zA-Z]", path):
        segments: List[RouteSegment] = []
        prev = start
        for raceway_id in filter(None, _ID_SEPARATOR.split(path)):
            segment = registry.get(raceway_id)
            if segment is None:
                return _rejection(raceway_id, "not_found", f"Tray {raceway_id} not found", False)
            rejected = _check_raceway(registry, segment, raceway_id, cable_area, allowed_group, False)
            if rejected:
                return rejected
            if not segments:
                if distance(prev, segment.start) > 0:
                    segments.append(_field(prev, segment.start))
            elif distance(segments[-1].end, segment.start) > COINCIDENT_TOLERANCE:
                return _rejection(
                    raceway_id, "sequence_mismatch", f"Tray sequence mismatch at {raceway_id}", False
                )
            segments.append(
                RouteSegment("tray", segment.start, segment.end, distance(segment.start, segment.end), raceway_id)
            )
            prev = segment.end
        if distance(prev, end) > 0:
            segments.append(_field(prev, end))
        return RouteResult.from_segments(segments, manual=True)

    waypoints: List[Point3] = []
    for chunk in filter(None, _WAYPOINT_SEPARATOR.split(path)):
        try:
            values = [float(v) for v in chunk.split(",")]
        except ValueError:
            values = []
        if len(values) != 3 or any(math.isnan(v) for v in values):
            return RouteResult.failure("Invalid waypoint format", manual=True)
        waypoints.append(as_point(values))

    segments = []
    prev = start
    for point in waypoints + [end]:
        segments.append(_field(prev, point))
        prev = point
    return RouteResult.from_segments(segments, manual=True)


def raceway_list_route(
    registry: RacewayRegistry,
    start: Sequence[float],
    end: Sequence[float],
    cable_area: float,
    allowed_group: Optional[str],
    raceway_ids: Sequence[str],
) -> Optional[RouteResult]:
    """Route through an assigned list of raceway (or conduit) ids.

    Unknown ids are skipped; returns None when none of them is known so the
    caller can fall back to automatic routing.
    """
    if not raceway_ids:
        return None
    known = [(key, registry.find(str(key))) for key in raceway_ids]
    unknown = [str(key) for key, segment in known if segment is None]
    known = [segment for _, segment in known if segment is not None]
    if not known:
        return None
    if unknown:
        logger.warning(f"Unknown raceway IDs: {', '.join(unknown)}")

    start, end = as_point(start), as_point(end)
    segments: List[RouteSegment] = []
    prev = start
    for segment in known:
        rejected = _check_raceway(registry, segment, segment.id, cable_area, allowed_group, True)
        if rejected:
            return rejected
        if distance(prev, segment.start) > 0:
            segments.append(_field(prev, segment.start))
        segments.append(
            RouteSegment("tray", segment.start, segment.end, distance(segment.start, segment.end), segment.id)
        )
        prev = segment.end
    if distance(prev, end) > 0:
        segments.append(_field(prev, end))
    return RouteResult.from_segments(segments, manual=True, manual_raceway=True)


def locked_route(segments: Sequence[RouteSegment]) -> RouteResult:
    """Result for a cable whose route was frozen by an earlier run."""
    return RouteResult.from_segments([replace(s) for s in segments], locked=True)
