"""Single-cable routing against a raceway registry."""

from typing import Iterable, Optional, Sequence

from .graph import RoutingGraph, build_base_graph, build_cable_graph
from .manual import locked_route, manual_path_route, raceway_list_route
from .models import CableSpec, RacewaySegment, RouteResult, RoutingOptions
from .registry import RacewayRegistry
from .solver import solve


class RoutingEngine:
    """Routes one cable at a time.

    The base graph is built on first use and reused for every later cable;
    only raceway fill changes between cables, which the per-cable graph reads
    from the registry.
    """

    def __init__(self, registry: RacewayRegistry, options: Optional[RoutingOptions] = None):
        self.registry = registry
        self.options = options or RoutingOptions(fill_limit=registry.fill_limit)
        self._base_graph: Optional[RoutingGraph] = None

    @classmethod
    def from_segments(cls, segments: Iterable[RacewaySegment], options: Optional[RoutingOptions] = None) -> "RoutingEngine":
        options = options or RoutingOptions.from_settings()
        return cls(RacewayRegistry.from_segments(segments, fill_limit=options.fill_limit), options)

    @property
    def base_graph(self) -> RoutingGraph:
        if self._base_graph is None:
            self.prepare_base_graph()
        return self._base_graph

    def prepare_base_graph(self) -> RoutingGraph:
        self._base_graph = build_base_graph(self.registry, self.options)
        return self._base_graph

    def calculate_route(
        self,
        start: Sequence[float],
        end: Sequence[float],
        cable_area: float,
        allowed_group: Optional[str] = None,
        manual_path: str = "",
        raceway_ids: Sequence[str] = (),
        cable_id: Optional[str] = None,
    ) -> RouteResult:
        if manual_path and manual_path.strip():
            return manual_path_route(self.registry, start, end, cable_area, allowed_group, manual_path)
        if raceway_ids:
            result = raceway_list_route(self.registry, start, end, cable_area, allowed_group, raceway_ids)
            if result is not None:
                return result

        graph, exclusions = build_cable_graph(
            self.base_graph, self.registry, self.options, start, end, cable_area, allowed_group, cable_id
        )
        return solve(graph, exclusions)

    def route_cable(self, cable: CableSpec) -> RouteResult:
        if cable.locked and cable.route_segments:
            return locked_route(cable.route_segments)
        return self.calculate_route(
            cable.start,
            cable.end,
            cable.area,
            cable.allowed_cable_group,
            cable.manual_path,
            cable.raceway_ids,
            cable.id,
        )
