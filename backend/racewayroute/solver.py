"""Shortest path search over a cable graph and conversion to route segments."""

import itertools
from dataclasses import replace
from heapq import heappop, heappush
from typing import List, Optional, Sequence, Tuple

from .geometry import distance, is_axis_aligned, segment_axis
from .graph import END, START, RoutingGraph
from .models import NO_PATH_ERROR, Exclusion, RouteResult, RouteSegment

# Edge kinds that represent free-air moves
FIELD_KINDS = ("field", "proximity")

# Trimmed segments shorter than this are dropped.
MIN_SEGMENT_LENGTH = 0.0001


def dijkstra_path(graph: RoutingGraph, start: str = START, end: str = END) -> Optional[Tuple[float, List[str]]]:
    """
    Dijkstra's algorithm to find the lowest-cost path from start to end.
    Returns (total_cost, path) or None if no path exists.

    Equal-cost entries leave the heap in insertion order, so the same graph
    always yields the same path.
    """
    if start not in graph.nodes or end not in graph.nodes:
        return None

    # Priority queue: (cost, counter, node_id)
    counter = itertools.count()
    heap = [(0.0, next(counter), start)]
    distances = {start: 0.0}
    came_from = {start: None}
    visited = set()

    while heap:
        current_cost, _, current = heappop(heap)

        if current in visited:
            continue

        visited.add(current)

        if current == end:
            path = []
            node = current
            while node is not None:
                path.append(node)
                node = came_from[node]
            path.reverse()
            return (current_cost, path)

        for neighbor, edge in graph.neighbors(current):
            if neighbor in visited:
                continue

            new_cost = current_cost + edge.weight

            if neighbor not in distances or new_cost < distances[neighbor]:
                distances[neighbor] = new_cost
                came_from[neighbor] = current
                heappush(heap, (new_cost, next(counter), neighbor))

    return None


def decompose_field_move(p1: Sequence[float], p2: Sequence[float]) -> List[RouteSegment]:
    """Split a free-air move into axis-aligned legs: X first, then Y, then Z."""
    legs = []
    current = tuple(p1)
    for axis in range(3):
        if p2[axis] == current[axis]:
            continue
        nxt = list(current)
        nxt[axis] = p2[axis]
        nxt = tuple(nxt)
        legs.append(RouteSegment("field", current, nxt, abs(p2[axis] - current[axis])))
        current = nxt
    return legs


def materialize_path(graph: RoutingGraph, path: Sequence[str]) -> List[RouteSegment]:
    segments: List[RouteSegment] = []
    for u, v in zip(path, path[1:]):
        edge = graph.edge(u, v)
        p1 = graph.nodes[u].point
        p2 = graph.nodes[v].point
        if edge.kind in FIELD_KINDS:
            segments.extend(decompose_field_move(p1, p2))
            continue
        # Connector edges between touching raceways carry no raceway of
        # their own; report them against the raceway they leave from.
        raceway_id = edge.raceway_id or graph.nodes[u].raceway_id or graph.nodes[v].raceway_id
        segments.append(RouteSegment("tray", p1, p2, distance(p1, p2), raceway_id))
    return segments


def remove_tray_backtracking(segments: Sequence[RouteSegment]) -> List[RouteSegment]:
    """Cut the overshoot where a tray run is followed by a field move straight back."""
    result: List[RouteSegment] = []
    i = 0
    while i < len(segments):
        curr = segments[i]
        if curr.type == "tray" and i + 1 < len(segments) and is_axis_aligned(curr.start, curr.end):
            nxt = segments[i + 1]
            if nxt.type == "field":
                tray_axis = segment_axis(curr.start, curr.end)[0]
                field_axis = segment_axis(nxt.start, nxt.end)[0]
                if tray_axis == field_axis:
                    tray_dir = _sign(curr.end[tray_axis] - curr.start[tray_axis])
                    field_dir = _sign(nxt.end[field_axis] - nxt.start[field_axis])
                    if tray_dir != 0 and field_dir != 0 and tray_dir != field_dir:
                        overshoot = min(abs(nxt.end[field_axis] - nxt.start[field_axis]), curr.length)
                        trimmed_tray = replace(
                            curr,
                            end=_shift(curr.end, tray_axis, -tray_dir * overshoot),
                            length=curr.length - overshoot,
                        )
                        trimmed_field = replace(
                            nxt,
                            start=_shift(nxt.start, field_axis, -tray_dir * overshoot),
                            length=nxt.length - overshoot,
                        )
                        if trimmed_tray.length > MIN_SEGMENT_LENGTH:
                            result.append(trimmed_tray)
                        if trimmed_field.length > MIN_SEGMENT_LENGTH:
                            result.append(trimmed_field)
                        i += 2
                        continue
        result.append(curr)
        i += 1
    return result


def consolidate_segments(segments: Sequence[RouteSegment]) -> List[RouteSegment]:
    """Merge back-to-back tray segments of the same raceway."""
    if not segments:
        return []

    consolidated = []
    current = replace(segments[0])
    for nxt in segments[1:]:
        if current.type == "tray" and nxt.type == "tray" and nxt.raceway_id == current.raceway_id:
            current.end = nxt.end
            current.length += nxt.length
        else:
            consolidated.append(current)
            current = replace(nxt)
    consolidated.append(current)
    return consolidated


def solve(graph: RoutingGraph, exclusions: Optional[List[Exclusion]] = None) -> RouteResult:
    exclusions = list(exclusions or [])
    found = dijkstra_path(graph)
    if found is None:
        return RouteResult.failure(NO_PATH_ERROR, exclusions=exclusions)

    cost, path = found
    raw = materialize_path(graph, path)
    tray_segments = list(dict.fromkeys(s.raceway_id for s in raw if s.type == "tray" and s.raceway_id))
    segments = consolidate_segments(remove_tray_backtracking(raw))
    return RouteResult.from_segments(segments, tray_segments=tray_segments, exclusions=exclusions, cost=cost)


def _sign(value: float) -> int:
    return (value > 0) - (value < 0)


def _shift(point, axis: int, delta: float):
    moved = list(point)
    moved[axis] += delta
    return tuple(moved)
