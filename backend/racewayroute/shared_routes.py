"""Report of free-air runs shared by several cables."""

from typing import Any, Dict, List, Mapping, Optional, Sequence

from .geometry import segments_overlap
from .models import cable_area


def _rounded(point) -> str:
    return ",".join(f"{v:.2f}" for v in point)


def _key(start, end, group) -> str:
    return f"{_rounded(start)}|{_rounded(end)}|{group or ''}"


def find_common_field_routes(
    routes: Sequence[Mapping[str, Any]],
    tolerance: float = 1,
    diameters: Optional[Mapping[str, float]] = None,
) -> List[Dict[str, Any]]:
    """Group overlapping field segments of plotted routes.

    *routes* are the ``allRoutes`` entries of a finished batch. Cables of
    different, explicitly set groups never share a run. When *diameters*
    maps cable label to diameter the shared cross-section is totalled.
    """
    shared: Dict[str, Dict[str, Any]] = {}
    for i, route_a in enumerate(routes):
        group_a = route_a.get("allowed_cable_group")
        fields_a = [s for s in route_a["segments"] if s["type"] == "field"]
        for route_b in routes[i + 1:]:
            group_b = route_b.get("allowed_cable_group")
            if group_a and group_b and group_a != group_b:
                continue
            fields_b = [s for s in route_b["segments"] if s["type"] == "field"]
            for seg_a in fields_a:
                for seg_b in fields_b:
                    overlap = segments_overlap(seg_a["start"], seg_a["end"], seg_b["start"], seg_b["end"], tolerance)
                    if overlap is None:
                        continue
                    key = _key(overlap[0], overlap[1], group_a)
                    entry = shared.setdefault(
                        key, {"start": overlap[0], "end": overlap[1], "group": group_a, "cables": {}}
                    )
                    # dict as an ordered set
                    entry["cables"][route_a["label"]] = None
                    entry["cables"][route_b["label"]] = None

    report = []
    for count, entry in enumerate(shared.values(), start=1):
        cables = list(entry["cables"])
        total_area = 0.0
        if diameters:
            total_area = sum(cable_area(diameters[c]) for c in cables if diameters.get(c))
        report.append({
            "name": f"Route {count}",
            "start": list(entry["start"]),
            "end": list(entry["end"]),
            "allowed_cable_group": entry["group"],
            "cables": cables,
            "total_area": total_area,
            "cable_count": len(cables),
        })
    return report
