"""Weighted routing graph built from raceway geometry.

A *base graph* holds everything that depends only on the raceway set:
raceway edges, connectors between touching raceways and field edges between
raceway nodes. It is built once per batch. For each cable a filtered copy is
taken (raceways without room or of the wrong group dropped) and the cable's
own ``start``/``end`` nodes are wired in. The base graph is never mutated by
cable routing.

Node ids are only used as keys; the owning raceway of a node or edge is
carried as explicit metadata and never parsed back out of an id.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Sequence, Tuple

from .geometry import COINCIDENT_TOLERANCE, Point3, as_point, distance, manhattan_distance, project_point_on_segment
from .log import get_logger
from .models import Exclusion, RacewaySegment, RoutingOptions
from .registry import RacewayRegistry

logger = get_logger("graph")

START = "start"
END = "end"

# Weight of the hop between two raceways that physically touch.
CONNECTOR_WEIGHT = 0.1


@dataclass
class GraphNode:
    id: str
    point: Point3
    kind: str  # start | end | raceway_endpoint | projection
    raceway_id: Optional[str] = None
    # raceway whose endpoint was projected to create this node
    via_raceway_id: Optional[str] = None

    @property
    def owners(self) -> FrozenSet[str]:
        return frozenset(r for r in (self.raceway_id, self.via_raceway_id) if r is not None)


@dataclass
class GraphEdge:
    weight: float
    kind: str  # raceway | raceway_connector | field | proximity
    raceway_id: Optional[str] = None


def endpoint_id(raceway_id: str, which: str) -> str:
    return f"{raceway_id}::{which}"


class RoutingGraph:
    """Undirected weighted graph with insertion-ordered adjacency."""

    def __init__(self):
        self.nodes: Dict[str, GraphNode] = {}
        self.edges: Dict[str, Dict[str, GraphEdge]] = {}

    def add_node(
        self,
        node_id: str,
        point: Sequence[float],
        kind: str,
        raceway_id: Optional[str] = None,
        via_raceway_id: Optional[str] = None,
    ) -> GraphNode:
        node = GraphNode(node_id, as_point(point), kind, raceway_id, via_raceway_id)
        self.nodes[node_id] = node
        self.edges.setdefault(node_id, {})
        return node

    def add_edge(self, id1: str, id2: str, weight: float, kind: str, raceway_id: Optional[str] = None) -> None:
        edge = GraphEdge(weight, kind, raceway_id)
        self.edges.setdefault(id1, {})[id2] = edge
        self.edges.setdefault(id2, {})[id1] = edge

    def edge(self, id1: str, id2: str) -> Optional[GraphEdge]:
        return self.edges.get(id1, {}).get(id2)

    def has_edge(self, id1: str, id2: str) -> bool:
        return self.edge(id1, id2) is not None

    def neighbors(self, node_id: str) -> Iterator[Tuple[str, GraphEdge]]:
        return iter(self.edges.get(node_id, {}).items())

    def edge_count(self) -> int:
        return sum(len(adj) for adj in self.edges.values()) // 2

    def without_raceways(self, raceway_ids: Iterable[str]) -> "RoutingGraph":
        """Copy of the graph minus every node owned by one of *raceway_ids*."""
        excluded = set(raceway_ids)
        clone = RoutingGraph()
        for node_id, node in self.nodes.items():
            if node.owners & excluded:
                continue
            clone.nodes[node_id] = node
        for node_id in clone.nodes:
            clone.edges[node_id] = {
                other: edge for other, edge in self.edges.get(node_id, {}).items() if other in clone.nodes
            }
        return clone


# ----------------- BASE GRAPH -----------------

def _pathway_segments(registry: RacewayRegistry, options: RoutingOptions) -> List[RacewaySegment]:
    segments = []
    for segment in registry:
        if segment.is_ductbank_outline and not options.include_ductbank_outlines:
            logger.warning(f"Ductbank {segment.id} has no conduit id; outline ignored for routing")
            continue
        segments.append(segment)
    return segments


def _add_raceway_edges(graph: RoutingGraph, segments: Sequence[RacewaySegment]) -> None:
    for segment in segments:
        start_id = endpoint_id(segment.id, "start")
        end_id = endpoint_id(segment.id, "end")
        graph.add_node(start_id, segment.start, "raceway_endpoint", raceway_id=segment.id)
        graph.add_node(end_id, segment.end, "raceway_endpoint", raceway_id=segment.id)
        graph.add_edge(start_id, end_id, distance(segment.start, segment.end), "raceway", segment.id)


def _add_intersections(graph: RoutingGraph, segments: Sequence[RacewaySegment]) -> None:
    """Link each raceway endpoint that lies on another raceway to that raceway."""
    for seg_a in segments:
        endpoints = [endpoint_id(seg_a.id, "start"), endpoint_id(seg_a.id, "end")]
        for seg_b in segments:
            if seg_a.id == seg_b.id:
                continue
            b_start = endpoint_id(seg_b.id, "start")
            b_end = endpoint_id(seg_b.id, "end")
            for ep_id in endpoints:
                ep = graph.nodes[ep_id].point
                proj = project_point_on_segment(ep, seg_b.start, seg_b.end)
                if distance(ep, proj) >= COINCIDENT_TOLERANCE:
                    continue
                proj_id = f"{ep_id}@{seg_b.id}"
                graph.add_node(proj_id, proj, "projection", raceway_id=seg_b.id, via_raceway_id=seg_a.id)
                graph.add_edge(ep_id, proj_id, CONNECTOR_WEIGHT, "raceway_connector", seg_b.id)
                graph.add_edge(proj_id, b_start, distance(proj, seg_b.start), "raceway", seg_b.id)
                graph.add_edge(proj_id, b_end, distance(proj, seg_b.end), "raceway", seg_b.id)


def _add_field_edges(graph: RoutingGraph, options: RoutingOptions) -> None:
    """Free-air edges between nodes of different raceways.

    Coincident nodes get a cheap connector instead, which stitches together
    raceways that touch without needing an intersection hit.
    """
    node_ids = list(graph.nodes)
    candidates: Dict[str, List[Tuple[float, str]]] = {node_id: [] for node_id in node_ids}

    for i, id1 in enumerate(node_ids):
        node1 = graph.nodes[id1]
        for id2 in node_ids[i + 1:]:
            node2 = graph.nodes[id2]
            if graph.has_edge(id1, id2) or node1.owners & node2.owners:
                continue
            dist = manhattan_distance(node1.point, node2.point)
            if options.max_field_edge is not None and dist > options.max_field_edge:
                continue
            candidates[id1].append((dist, id2))
            candidates[id2].append((dist, id1))

    for id1 in node_ids:
        ranked = sorted(candidates[id1], key=lambda c: c[0])
        if options.max_field_neighbors is not None:
            ranked = ranked[:options.max_field_neighbors]
        for dist, id2 in ranked:
            if graph.has_edge(id1, id2):
                continue
            if dist < COINCIDENT_TOLERANCE:
                graph.add_edge(id1, id2, CONNECTOR_WEIGHT, "raceway_connector")
            else:
                graph.add_edge(id1, id2, dist * options.field_penalty, "field")


def build_base_graph(registry: RacewayRegistry, options: RoutingOptions) -> RoutingGraph:
    graph = RoutingGraph()
    segments = _pathway_segments(registry, options)
    _add_raceway_edges(graph, segments)
    _add_intersections(graph, segments)
    _add_field_edges(graph, options)
    logger.debug(f"Base graph built: {len(graph.nodes)} nodes, {graph.edge_count()} edges")
    return graph


# ----------------- PER-CABLE GRAPH -----------------

def exclusion_reason(
    registry: RacewayRegistry,
    segment: RacewaySegment,
    cable_area: float,
    allowed_group: Optional[str],
) -> Optional[str]:
    if segment.max_fill <= 0:
        return "no_capacity"
    if not registry.has_capacity(segment, cable_area):
        return "over_capacity"
    if segment.allowed_cable_group and segment.allowed_cable_group != allowed_group:
        return "group_mismatch"
    return None


def _field_penalty(registry: RacewayRegistry, options: RoutingOptions, a: Point3, b: Point3) -> float:
    if registry.is_shared_segment(a, b):
        return options.field_penalty * options.shared_penalty
    return options.field_penalty


def build_cable_graph(
    base: RoutingGraph,
    registry: RacewayRegistry,
    options: RoutingOptions,
    start: Sequence[float],
    end: Sequence[float],
    cable_area: float,
    allowed_group: Optional[str] = None,
    cable_id: Optional[str] = None,
) -> Tuple[RoutingGraph, List[Exclusion]]:
    """Graph for one cable plus the raceways it could not use and why."""
    start, end = as_point(start), as_point(end)

    exclusions: List[Exclusion] = []
    for segment in registry:
        reason = exclusion_reason(registry, segment, cable_area, allowed_group)
        if reason:
            exclusions.append(Exclusion(segment.id, reason))
    if exclusions:
        logger.warning(
            "Mismatched raceway segments: %s",
            [{"cable_id": cable_id, "raceway_id": e.raceway_id, "reason": e.reason} for e in exclusions],
        )

    graph = base.without_raceways(e.raceway_id for e in exclusions)

    existing = list(graph.nodes.values())
    graph.add_node(START, start, "start")
    graph.add_node(END, end, "end")
    for node in existing:
        graph.add_edge(
            START, node.id,
            manhattan_distance(start, node.point) * _field_penalty(registry, options, start, node.point),
            "field",
        )
        graph.add_edge(
            END, node.id,
            manhattan_distance(end, node.point) * _field_penalty(registry, options, end, node.point),
            "field",
        )
    graph.add_edge(START, END, manhattan_distance(start, end) * _field_penalty(registry, options, start, end), "field")

    # Let the cable snag onto raceways passing close to its endpoints
    for segment in registry:
        a_id = endpoint_id(segment.id, "start")
        b_id = endpoint_id(segment.id, "end")
        if a_id not in graph.nodes:
            continue
        for label, point in ((START, start), (END, end)):
            proj = project_point_on_segment(point, segment.start, segment.end)
            offset = manhattan_distance(point, proj)
            if offset > options.proximity_threshold:
                exclusions.append(Exclusion(segment.id, f"{label}_beyond_proximity"))
                continue
            proj_id = f"{label}@{segment.id}"
            graph.add_node(proj_id, proj, "projection", raceway_id=segment.id)
            graph.add_edge(label, proj_id, offset * _field_penalty(registry, options, point, proj), "proximity")
            graph.add_edge(proj_id, a_id, distance(proj, segment.start), "raceway", segment.id)
            graph.add_edge(proj_id, b_id, distance(proj, segment.end), "raceway", segment.id)

    logger.debug(f"Cable graph for {cable_id or 'cable'}: {len(graph.nodes)} nodes, {graph.edge_count()} edges")
    return graph, exclusions
