"""Exception types raised by the routing service."""


class RacewayRouteError(Exception):
    """Base class for routing service errors."""


class ScheduleError(RacewayRouteError, ValueError):
    """A raceway or cable schedule record cannot be normalized."""


class BatchStateError(RacewayRouteError):
    """A batch operation was requested in a state that does not allow it."""
