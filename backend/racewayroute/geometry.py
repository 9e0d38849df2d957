"""Point and segment helpers shared by the graph builder and the solver.

Points are plain ``(x, y, z)`` tuples. Everything here is a pure function.
"""

import math
from typing import Optional, Sequence, Tuple

Point3 = Tuple[float, float, float]

# Points closer than this are treated as the same physical location.
COINCIDENT_TOLERANCE = 0.1


def as_point(values: Sequence[float]) -> Point3:
    return (float(values[0]), float(values[1]), float(values[2]))


def distance(p1: Sequence[float], p2: Sequence[float]) -> float:
    """Euclidean distance between two 3D points."""
    return math.sqrt((p1[0] - p2[0]) ** 2 + (p1[1] - p2[1]) ** 2 + (p1[2] - p2[2]) ** 2)


def manhattan_distance(p1: Sequence[float], p2: Sequence[float]) -> float:
    """Axis-aligned travel distance, used for free-air (field) routing."""
    return abs(p1[0] - p2[0]) + abs(p1[1] - p2[1]) + abs(p1[2] - p2[2])


def project_point_on_segment(p: Sequence[float], a: Sequence[float], b: Sequence[float]) -> Point3:
    """Closest point to *p* on the segment [a, b], clamped to the segment ends."""
    ab = (b[0] - a[0], b[1] - a[1], b[2] - a[2])
    ap = (p[0] - a[0], p[1] - a[1], p[2] - a[2])
    mag_ab_sq = ab[0] * ab[0] + ab[1] * ab[1] + ab[2] * ab[2]
    if mag_ab_sq == 0:
        return as_point(a)

    dot = ap[0] * ab[0] + ap[1] * ab[1] + ap[2] * ab[2]
    t = max(0.0, min(1.0, dot / mag_ab_sq))
    return (a[0] + t * ab[0], a[1] + t * ab[1], a[2] + t * ab[2])


def segment_axis(start: Sequence[float], end: Sequence[float]) -> Tuple[int, int, int]:
    """Return ``(axis, const1, const2)``: the first axis along which the segment moves
    and the two axes held constant."""
    if start[0] != end[0]:
        return 0, 1, 2
    if start[1] != end[1]:
        return 1, 0, 2
    return 2, 0, 1


def is_axis_aligned(start: Sequence[float], end: Sequence[float]) -> bool:
    moving = sum(1 for i in range(3) if start[i] != end[i])
    return moving <= 1


def segments_overlap(
    start_a: Sequence[float],
    end_a: Sequence[float],
    start_b: Sequence[float],
    end_b: Sequence[float],
    tol: float,
) -> Optional[Tuple[Point3, Point3]]:
    """Overlap of two collinear axis-aligned segments, or None.

    Segments are compared along the first axis each of them moves on; the other
    two coordinates must agree within *tol*.
    """
    axis_a, c1_a, c2_a = segment_axis(start_a, end_a)
    axis_b, c1_b, c2_b = segment_axis(start_b, end_b)
    if axis_a != axis_b:
        return None
    if abs(start_a[c1_a] - start_b[c1_b]) > tol:
        return None
    if abs(start_a[c2_a] - start_b[c2_b]) > tol:
        return None

    a1, a2 = sorted((start_a[axis_a], end_a[axis_a]))
    b1, b2 = sorted((start_b[axis_b], end_b[axis_b]))
    lo = max(a1, b1)
    hi = min(a2, b2)
    if hi + tol < lo:
        return None

    point_start = list(start_a)
    point_end = list(start_a)
    point_start[axis_a] = lo
    point_end[axis_a] = hi
    return as_point(point_start), as_point(point_end)
