"""Request/response schemas for the routing API."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .models import CableSpec, RacewaySegment, RouteSegment, RoutingOptions
from .normalize import build_raceway_segments, normalize_cable


class Point3D(BaseModel):
    x: float
    y: float
    z: float

    def as_tuple(self):
        return (self.x, self.y, self.z)


class Raceway(BaseModel):
    id: str
    kind: Literal["tray", "conduit", "ductbank"] = "tray"
    start: Point3D
    end: Point3D
    width: float = Field(0.0, ge=0)
    height: float = Field(0.0, ge=0)
    area: Optional[float] = Field(None, ge=0, description="Explicit cross-section; overrides width*height.")
    fillLimit: Optional[float] = Field(None, ge=0, le=1)
    current_fill: float = Field(0.0, ge=0)
    allowed_cable_group: Optional[str] = None
    ductbankTag: Optional[str] = None
    conduitId: Optional[str] = None

    def to_segment(self) -> RacewaySegment:
        return RacewaySegment(
            id=self.id,
            kind=self.kind,
            start=self.start.as_tuple(),
            end=self.end.as_tuple(),
            width=self.width,
            height=self.height,
            area=self.area,
            fill_limit=self.fillLimit,
            current_fill=self.current_fill,
            allowed_cable_group=self.allowed_cable_group or None,
            ductbank_id=self.ductbankTag,
            conduit_id=self.conduitId,
        )


class RouteSegmentModel(BaseModel):
    type: Literal["tray", "field"]
    start: List[float] = Field(..., min_length=3, max_length=3)
    end: List[float] = Field(..., min_length=3, max_length=3)
    length: float
    raceway_id: Optional[str] = None


class Cable(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    start: List[float] = Field(..., min_length=3, max_length=3)
    end: List[float] = Field(..., min_length=3, max_length=3)
    diameter: float = Field(..., gt=0)
    allowed_cable_group: Optional[str] = None
    manual_path: str = ""
    raceway_ids: List[str] = []
    locked: bool = False
    route_segments: Optional[List[RouteSegmentModel]] = None
    start_tag: Optional[str] = None
    end_tag: Optional[str] = None

    def to_spec(self, index: int = 0) -> CableSpec:
        return CableSpec(
            id=self.id or self.name or f"cable-{index + 1}",
            start=tuple(self.start),
            end=tuple(self.end),
            diameter=self.diameter,
            allowed_cable_group=self.allowed_cable_group or None,
            manual_path=self.manual_path,
            raceway_ids=list(self.raceway_ids),
            locked=self.locked,
            route_segments=[RouteSegment.from_dict(s.model_dump()) for s in self.route_segments]
            if self.route_segments else None,
            start_tag=self.start_tag,
            end_tag=self.end_tag,
        )


class RoutingOptionsModel(BaseModel):
    fillLimit: Optional[float] = Field(None, ge=0, le=1)
    proximityThreshold: Optional[float] = Field(None, ge=0)
    fieldPenalty: Optional[float] = Field(None, ge=0)
    sharedPenalty: Optional[float] = Field(None, ge=0)
    maxFieldEdge: Optional[float] = Field(None, ge=0)
    maxFieldNeighbors: Optional[int] = Field(None, ge=1)
    includeDuctbankOutlines: Optional[bool] = None

    def to_options(self) -> RoutingOptions:
        return RoutingOptions.from_settings().with_overrides(
            fill_limit=self.fillLimit,
            proximity_threshold=self.proximityThreshold,
            field_penalty=self.fieldPenalty,
            shared_penalty=self.sharedPenalty,
            max_field_edge=self.maxFieldEdge,
            max_field_neighbors=self.maxFieldNeighbors,
            include_ductbank_outlines=self.includeDuctbankOutlines,
        )


class RacewayInput(BaseModel):
    """Raceways given either as typed records or as raw schedule rows."""

    raceways: List[Raceway] = []
    trays: List[Dict[str, Any]] = []
    conduits: List[Dict[str, Any]] = []
    ductbanks: List[Dict[str, Any]] = []
    options: RoutingOptionsModel = RoutingOptionsModel()

    def raceway_segments(self) -> List[RacewaySegment]:
        """Typed raceways first, then the normalized schedule rows. Raises ScheduleError."""
        segments = [r.to_segment() for r in self.raceways]
        segments.extend(build_raceway_segments(self.trays, self.conduits, self.ductbanks))
        return segments


class RouteRequest(RacewayInput):
    cable: Cable


class BatchRequest(RacewayInput):
    cables: List[Cable] = []
    cableSchedule: List[Dict[str, Any]] = Field(
        default=[], description="Raw cable schedule rows, routed after the typed cables."
    )

    def cable_specs(self) -> List[CableSpec]:
        specs = [c.to_spec(i) for i, c in enumerate(self.cables)]
        specs.extend(normalize_cable(row) for row in self.cableSchedule)
        return specs


class ExclusionModel(BaseModel):
    raceway_id: str
    reason: str


class RouteResultModel(BaseModel):
    success: bool
    total_length: float = 0.0
    field_routed_length: float = 0.0
    route_segments: List[RouteSegmentModel] = []
    tray_segments: List[str] = []
    exclusions: List[ExclusionModel] = []
    cost: Optional[float] = None
    manual: bool = False
    manual_raceway: bool = False
    locked: bool = False
    error: Optional[str] = None
    error_detail: Optional[Dict[str, str]] = None


class BatchStarted(BaseModel):
    jobId: str
    total: int


class BatchStatus(BaseModel):
    jobId: str
    state: str
    messages: List[Dict[str, Any]] = []
    commonFieldRoutes: Optional[List[Dict[str, Any]]] = None
