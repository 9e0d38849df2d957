import pytest

from racewayroute.models import CableSpec, RacewaySegment, RoutingOptions


def make_tray(tray_id, start, end, width=10.0, height=10.0, **kwargs) -> RacewaySegment:
    return RacewaySegment(id=tray_id, start=start, end=end, width=width, height=height, **kwargs)


def make_cable(cable_id, start, end, diameter=1.0, **kwargs) -> CableSpec:
    return CableSpec(id=cable_id, start=start, end=end, diameter=diameter, **kwargs)


@pytest.fixture
def options() -> RoutingOptions:
    return RoutingOptions()


@pytest.fixture
def corner_trays():
    """Two straight trays meeting at (10, 0, 0)."""
    return [
        make_tray("T1", (0, 0, 0), (10, 0, 0)),
        make_tray("T2", (10, 0, 0), (10, 10, 0)),
    ]
