import logging

import pytest

from conftest import make_cable, make_tray
from racewayroute.engine import RoutingEngine
from racewayroute.manual import locked_route, manual_path_route, raceway_list_route
from racewayroute.models import RouteSegment, RoutingOptions
from racewayroute.registry import RacewayRegistry


@pytest.fixture
def registry(corner_trays):
    return RacewayRegistry.from_segments(corner_trays + [make_tray("T3", (50, 0, 0), (60, 0, 0))])


def test_manual_path_through_named_trays(registry):
    result = manual_path_route(registry, (0, -5, 0), (10, 15, 0), 1.0, None, "T1>T2")

    assert result.success and result.manual
    assert [s.type for s in result.route_segments] == ["field", "tray", "tray", "field"]
    assert result.tray_segments == ["T1", "T2"]
    assert result.total_length == pytest.approx(30.0)
    assert result.field_routed_length == pytest.approx(10.0)


def test_manual_path_accepts_whitespace_separators(registry):
    result = manual_path_route(registry, (0, 0, 0), (10, 10, 0), 1.0, None, " T1  T2 ")

    assert result.success
    assert result.total_length == pytest.approx(20.0)
    assert result.field_routed_length == 0


def test_manual_path_unknown_tray(registry):
    result = manual_path_route(registry, (0, 0, 0), (10, 10, 0), 1.0, None, "T1>T9")

    assert not result.success
    assert result.error == "Tray T9 not found"
    assert result.error_detail == {"raceway_id": "T9", "reason": "not_found"}


def test_manual_path_sequence_mismatch(registry):
    result = manual_path_route(registry, (0, 0, 0), (60, 0, 0), 1.0, None, "T1>T3")

    assert not result.success
    assert result.error == "Tray sequence mismatch at T3"


def test_manual_path_over_capacity(registry):
    registry.get("T1").current_fill = 40.0
    result = manual_path_route(registry, (0, 0, 0), (10, 10, 0), 1.0, None, "T1>T2")

    assert result.error == "Tray T1 over capacity"
    assert result.error_detail["reason"] == "over_capacity"


@pytest.mark.parametrize("cable_group, allowed", [("B", False), ("A", True), (None, True)])
def test_manual_path_group_check(registry, cable_group, allowed):
    registry.get("T1").allowed_cable_group = "A"
    result = manual_path_route(registry, (0, 0, 0), (10, 10, 0), 1.0, cable_group, "T1>T2")

    assert result.success is allowed
    if not allowed:
        assert result.error == "Tray T1 not allowed"


def test_manual_waypoints(registry):
    result = manual_path_route(registry, (0, 0, 0), (15, 5, 0), 1.0, None, "10,0,0")

    assert result.success
    assert result.total_length == pytest.approx(17.0711, abs=1e-4)
    assert result.field_routed_length == pytest.approx(result.total_length)
    assert result.tray_segments == []


@pytest.mark.parametrize("path", ["1,2;3,4,5", "1,2,3;4,5,"])
def test_manual_waypoints_invalid(registry, path):
    result = manual_path_route(registry, (0, 0, 0), (1, 1, 1), 1.0, None, path)

    assert not result.success
    assert result.error == "Invalid waypoint format"


def test_empty_manual_path_is_not_a_route(registry):
    assert manual_path_route(registry, (0, 0, 0), (1, 1, 1), 1.0, None, "   ") is None


def test_raceway_list_by_conduit_id():
    conduit = make_tray("DB1-C1", (0, 0, 0), (0, 100, 0), kind="conduit", width=2, height=2,
                        ductbank_id="DB1", conduit_id="C1")
    registry = RacewayRegistry.from_segments([conduit])
    result = raceway_list_route(registry, (0, -10, 0), (0, 110, 0), 0.5, None, ["C1"])

    assert result.success
    assert result.manual_raceway
    assert result.tray_segments == ["DB1-C1"]
    assert result.total_length == pytest.approx(120.0)


def test_raceway_list_skips_unknown_ids(registry, caplog):
    with caplog.at_level(logging.WARNING):
        result = raceway_list_route(registry, (0, 0, 0), (10, 10, 0), 1.0, None, ["T1", "X9", "T2"])

    assert result.tray_segments == ["T1", "T2"]
    assert "Unknown raceway IDs: X9" in caplog.text


def test_unknown_raceway_list_falls_back_to_automatic(corner_trays):
    engine = RoutingEngine.from_segments(corner_trays, RoutingOptions())
    result = engine.calculate_route((2, 0, 0), (10, 6, 0), 1.0, raceway_ids=["nope"])

    assert result.success
    assert not result.manual_raceway
    assert result.cost is not None


def test_manual_path_wins_over_raceway_list(corner_trays):
    engine = RoutingEngine.from_segments(corner_trays, RoutingOptions())
    result = engine.calculate_route((0, 0, 0), (10, 10, 0), 1.0, manual_path="T1>T2", raceway_ids=["T2"])

    assert result.manual and not result.manual_raceway
    assert result.tray_segments == ["T1", "T2"]


def test_locked_cable_reuses_stored_route(corner_trays):
    stored = [
        RouteSegment("tray", (0, 0, 0), (10, 0, 0), 10.0, "T1"),
        RouteSegment("field", (10, 0, 0), (10, 3, 0), 3.0),
    ]
    cable = make_cable("C1", (0, 0, 0), (10, 3, 0), locked=True, route_segments=stored)
    engine = RoutingEngine.from_segments(corner_trays, RoutingOptions())

    result = engine.route_cable(cable)
    assert result.locked
    assert result.tray_segments == ["T1"]
    assert result.total_length == pytest.approx(13.0)
    assert result.route_segments == stored
    assert result.route_segments[0] is not stored[0]


def test_locked_route_without_segments_is_routed_normally(corner_trays):
    cable = make_cable("C1", (2, 0, 0), (10, 6, 0), locked=True)
    result = RoutingEngine.from_segments(corner_trays, RoutingOptions()).route_cable(cable)

    assert not result.locked
    assert result.success


def test_locked_route_helper():
    result = locked_route([RouteSegment("field", (0, 0, 0), (0, 0, 4), 4.0)])
    assert result.locked and result.field_routed_length == 4.0
