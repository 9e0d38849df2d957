"""Cable routing through trays, conduits and ductbanks."""

from .batch import BatchRouter, BatchWorker, CancellationToken
from .engine import RoutingEngine
from .models import CableSpec, RacewaySegment, RouteResult, RouteSegment, RoutingOptions
from .registry import RacewayRegistry

__all__ = [
    "BatchRouter",
    "BatchWorker",
    "CableSpec",
    "CancellationToken",
    "RacewayRegistry",
    "RacewaySegment",
    "RouteResult",
    "RouteSegment",
    "RoutingEngine",
    "RoutingOptions",
]
