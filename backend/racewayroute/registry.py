"""Raceway capacity bookkeeping for one batch run."""

import copy
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .config import DEFAULT_FILL_LIMIT
from .geometry import COINCIDENT_TOLERANCE, Point3, as_point, segments_overlap
from .log import get_logger
from .models import RacewaySegment, RouteSegment

logger = get_logger("registry")

# Absorbs float rounding when a cable exactly fills the remaining capacity.
FILL_TOLERANCE = 1e-9


class RacewayRegistry:
    """Owns the raceway segments of a batch and their occupied fill.

    Segments are kept in insertion order so that graph construction is
    deterministic for the same schedule.
    """

    def __init__(self, fill_limit: float = DEFAULT_FILL_LIMIT):
        self.fill_limit = fill_limit
        self._segments: Dict[str, RacewaySegment] = {}
        self._shared_field_segments: List[Tuple[Point3, Point3]] = []

    @classmethod
    def from_segments(cls, segments: Iterable[RacewaySegment], fill_limit: float = DEFAULT_FILL_LIMIT) -> "RacewayRegistry":
        """Build a registry from a schedule snapshot.

        The segments are deep-copied so fill updates never leak back into the
        caller's schedule.
        """
        registry = cls(fill_limit=fill_limit)
        for segment in segments:
            registry.add_segment(copy.deepcopy(segment))
        return registry

    def add_segment(self, segment: RacewaySegment) -> None:
        limit = segment.fill_limit if segment.fill_limit is not None else self.fill_limit
        segment.max_fill = segment.cross_section * limit
        if segment.id in self._segments:
            logger.warning(f"Duplicate raceway id '{segment.id}': replacing the earlier segment")
        self._segments[segment.id] = segment

    def get(self, raceway_id: str) -> Optional[RacewaySegment]:
        return self._segments.get(raceway_id)

    def find(self, key: str) -> Optional[RacewaySegment]:
        """Look up by raceway id, falling back to a conduit id."""
        segment = self._segments.get(key)
        if segment is not None:
            return segment
        for candidate in self._segments.values():
            if candidate.conduit_id is not None and str(candidate.conduit_id) == key:
                return candidate
        return None

    def __contains__(self, raceway_id: object) -> bool:
        return raceway_id in self._segments

    def __iter__(self) -> Iterator[RacewaySegment]:
        return iter(self._segments.values())

    def __len__(self) -> int:
        return len(self._segments)

    # ----------------- capacity -----------------

    def has_capacity(self, segment: RacewaySegment, cable_area: float) -> bool:
        if segment.max_fill <= 0:
            return False
        return segment.current_fill + cable_area <= segment.max_fill + FILL_TOLERANCE

    def update_fill(self, raceway_ids: Iterable[str], cable_area: float) -> None:
        """Add *cable_area* to every known raceway. Unknown ids are ignored."""
        for raceway_id in raceway_ids:
            segment = self._segments.get(raceway_id)
            if segment is not None:
                segment.current_fill += cable_area

    def utilization(self) -> Dict[str, Dict[str, float]]:
        report = {}
        for raceway_id, segment in self._segments.items():
            if segment.max_fill > 0:
                percentage = segment.current_fill / segment.max_fill * 100
            else:
                # zero-capacity raceways are reported as full
                percentage = 100.0
            report[raceway_id] = {
                "current_fill": segment.current_fill,
                "max_fill": segment.max_fill,
                "utilization_percentage": percentage,
                "available_capacity": segment.max_fill - segment.current_fill,
            }
        return report

    def snapshot(self) -> List[dict]:
        return [segment.to_dict() for segment in self._segments.values()]

    # ----------------- shared field usage -----------------

    def record_shared_field_segments(self, segments: Sequence[RouteSegment]) -> None:
        for segment in segments:
            if segment.type == "field":
                self._shared_field_segments.append((segment.start, segment.end))

    def is_shared_segment(self, start: Sequence[float], end: Sequence[float], tol: float = COINCIDENT_TOLERANCE) -> bool:
        start, end = as_point(start), as_point(end)
        for shared_start, shared_end in self._shared_field_segments:
            if segments_overlap(start, end, shared_start, shared_end, tol):
                return True
        return False

    @property
    def shared_field_segments(self) -> List[Tuple[Point3, Point3]]:
        return list(self._shared_field_segments)
