"""Routing domain models."""

import math
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Optional, Sequence

from .config import (
    DEFAULT_FIELD_PENALTY,
    DEFAULT_FILL_LIMIT,
    DEFAULT_PROXIMITY_THRESHOLD,
    DEFAULT_SHARED_PENALTY,
    Settings,
    settings,
)
from .geometry import Point3, as_point

RACEWAY_KINDS = ("tray", "conduit", "ductbank")

NO_PATH_ERROR = "No valid path could be found."


@dataclass
class RoutingOptions:
    fill_limit: float = DEFAULT_FILL_LIMIT
    proximity_threshold: float = DEFAULT_PROXIMITY_THRESHOLD
    field_penalty: float = DEFAULT_FIELD_PENALTY
    shared_penalty: float = DEFAULT_SHARED_PENALTY
    max_field_edge: Optional[float] = None
    max_field_neighbors: Optional[int] = None
    include_ductbank_outlines: bool = False

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None) -> "RoutingOptions":
        source = source or settings
        return cls(**{f.name: getattr(source, f.name) for f in fields(cls)})

    def with_overrides(self, **overrides: Any) -> "RoutingOptions":
        """Copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


@dataclass
class RacewaySegment:
    """One straight raceway run. ``current_fill`` accumulates over a batch."""

    id: str
    start: Point3
    end: Point3
    width: float = 0.0
    height: float = 0.0
    kind: str = "tray"
    area: Optional[float] = None
    fill_limit: Optional[float] = None
    current_fill: float = 0.0
    allowed_cable_group: Optional[str] = None
    ductbank_id: Optional[str] = None
    conduit_id: Optional[str] = None
    max_fill: float = 0.0

    def __post_init__(self):
        self.start = as_point(self.start)
        self.end = as_point(self.end)
        if self.kind not in RACEWAY_KINDS:
            raise ValueError(f"Unknown raceway kind '{self.kind}' for raceway {self.id}")

    @property
    def cross_section(self) -> float:
        if self.area is not None:
            return self.area
        return self.width * self.height

    @property
    def is_ductbank_outline(self) -> bool:
        return self.kind == "ductbank" and not self.conduit_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "start": list(self.start),
            "end": list(self.end),
            "width": self.width,
            "height": self.height,
            "area": self.area,
            "fill_limit": self.fill_limit,
            "current_fill": self.current_fill,
            "max_fill": self.max_fill,
            "allowed_cable_group": self.allowed_cable_group,
            "ductbank_id": self.ductbank_id,
            "conduit_id": self.conduit_id,
        }


@dataclass
class RouteSegment:
    type: str  # "tray" | "field"
    start: Point3
    end: Point3
    length: float
    raceway_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "start": list(self.start),
            "end": list(self.end),
            "length": self.length,
            "raceway_id": self.raceway_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RouteSegment":
        return cls(
            type=data.get("type", "field"),
            start=as_point(data["start"]),
            end=as_point(data["end"]),
            length=float(data["length"]),
            raceway_id=data.get("raceway_id") or data.get("tray_id"),
        )


@dataclass
class CableSpec:
    id: str
    start: Point3
    end: Point3
    diameter: float
    allowed_cable_group: Optional[str] = None
    manual_path: str = ""
    raceway_ids: List[str] = field(default_factory=list)
    locked: bool = False
    route_segments: Optional[List[RouteSegment]] = None
    start_tag: Optional[str] = None
    end_tag: Optional[str] = None

    def __post_init__(self):
        self.start = as_point(self.start)
        self.end = as_point(self.end)

    @property
    def area(self) -> float:
        return cable_area(self.diameter)


def cable_area(diameter: float) -> float:
    return math.pi * (diameter / 2) ** 2


@dataclass
class Exclusion:
    raceway_id: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"raceway_id": self.raceway_id, "reason": self.reason}


@dataclass
class RouteResult:
    success: bool
    total_length: float = 0.0
    field_routed_length: float = 0.0
    route_segments: List[RouteSegment] = field(default_factory=list)
    tray_segments: List[str] = field(default_factory=list)
    exclusions: List[Exclusion] = field(default_factory=list)
    cost: Optional[float] = None
    manual: bool = False
    manual_raceway: bool = False
    locked: bool = False
    error: Optional[str] = None
    error_detail: Optional[Dict[str, str]] = None

    @classmethod
    def from_segments(cls, segments: Sequence[RouteSegment], **kwargs: Any) -> "RouteResult":
        """Successful result whose lengths and raceway set are derived from *segments*."""
        segments = list(segments)
        if "tray_segments" not in kwargs:
            kwargs["tray_segments"] = list(
                dict.fromkeys(s.raceway_id for s in segments if s.type == "tray" and s.raceway_id)
            )
        return cls(
            success=True,
            total_length=sum(s.length for s in segments),
            field_routed_length=sum(s.length for s in segments if s.type == "field"),
            route_segments=segments,
            **kwargs,
        )

    @classmethod
    def failure(cls, error: str, **kwargs: Any) -> "RouteResult":
        return cls(success=False, error=error, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "total_length": self.total_length,
            "field_routed_length": self.field_routed_length,
            "route_segments": [s.to_dict() for s in self.route_segments],
            "tray_segments": list(self.tray_segments),
            "exclusions": [e.to_dict() for e in self.exclusions],
            "cost": self.cost,
            "manual": self.manual,
            "manual_raceway": self.manual_raceway,
            "locked": self.locked,
            "error": self.error,
            "error_detail": self.error_detail,
        }
