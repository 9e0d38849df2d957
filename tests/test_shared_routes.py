import pytest

from racewayroute.models import cable_area
from racewayroute.shared_routes import find_common_field_routes


def _route(label, segments, group=None):
    return {
        "label": label,
        "segments": [
            {"type": kind, "start": list(start), "end": list(end), "length": 0.0}
            for kind, start, end in segments
        ],
        "allowed_cable_group": group,
    }


def test_overlapping_field_runs_reported_once():
    routes = [
        _route("A", [("field", (0, 0, 0), (10, 0, 0)), ("tray", (10, 0, 0), (10, 20, 0))]),
        _route("B", [("field", (5, 0, 0), (15, 0, 0))]),
    ]
    report = find_common_field_routes(routes, diameters={"A": 1.0, "B": 2.0})

    assert len(report) == 1
    entry = report[0]
    assert entry["name"] == "Route 1"
    assert entry["start"] == [5.0, 0.0, 0.0]
    assert entry["end"] == [10.0, 0.0, 0.0]
    assert entry["cables"] == ["A", "B"]
    assert entry["cable_count"] == 2
    assert entry["total_area"] == pytest.approx(cable_area(1.0) + cable_area(2.0))


def test_three_cables_share_one_run():
    segment = [("field", (0, 5, 0), (0, 25, 0))]
    report = find_common_field_routes([_route("A", segment), _route("B", segment), _route("C", segment)])

    assert [entry["cables"] for entry in report] == [["A", "B", "C"]]
    assert report[0]["total_area"] == 0.0


def test_groups_keep_runs_apart():
    segment = [("field", (0, 0, 0), (10, 0, 0))]
    routes = [_route("A", segment, "power"), _route("B", segment, "signal")]

    assert find_common_field_routes(routes) == []


def test_unset_group_shares_with_any():
    segment = [("field", (0, 0, 0), (10, 0, 0))]
    report = find_common_field_routes([_route("A", segment, "power"), _route("B", segment)])

    assert report[0]["allowed_cable_group"] == "power"


def test_parallel_runs_beyond_tolerance_ignored():
    routes = [
        _route("A", [("field", (0, 0, 0), (10, 0, 0))]),
        _route("B", [("field", (0, 3, 0), (10, 3, 0))]),
        _route("C", [("tray", (0, 0, 0), (10, 0, 0))]),
    ]
    assert find_common_field_routes(routes) == []
