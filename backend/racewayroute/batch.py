"""Batch routing with fill accounting, cancellation and resume.

Cables are routed strictly in the given order against one mutating raceway
registry: each accepted route consumes raceway capacity before the next cable
is solved. Cancellation is cooperative and is only observed between cables.

Batch lifecycle::

    idle -> running -> cancelled -> running (resume) -> done
                    \\-> done
"""

import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from .engine import RoutingEngine
from .exceptions import BatchStateError
from .log import get_logger
from .models import CableSpec, Exclusion, RacewaySegment, RouteResult, RoutingOptions
from .registry import RacewayRegistry

logger = get_logger("batch")

IDLE = "idle"
RUNNING = "running"
CANCELLED = "cancelled"
DONE = "done"

# Exclusion reason for a locked route applied past a raceway's fill limit
FORCED_OVER_CAPACITY = "forced_over_capacity"

Notify = Callable[[Dict[str, Any]], None]


class CancellationToken:
    """Flag shared between the host and the batch loop."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def clear(self) -> None:
        self._event.clear()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class BatchState:
    cables: List[CableSpec]
    results: List[Optional[RouteResult]]
    all_routes: List[Dict[str, Any]] = field(default_factory=list)
    index: int = 0
    status: str = IDLE
    start_time: float = 0.0
    pause_start: Optional[float] = None
    paused_duration: float = 0.0


class BatchRouter:
    """Routes an ordered cable list; owns the registry for the whole batch."""

    def __init__(
        self,
        raceways: Iterable[RacewaySegment],
        cables: Iterable[CableSpec],
        options: Optional[RoutingOptions] = None,
        notify: Optional[Notify] = None,
        token: Optional[CancellationToken] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.options = options or RoutingOptions.from_settings()
        # from_segments deep-copies, the caller's schedule is never touched
        self.engine = RoutingEngine.from_segments(raceways, self.options)
        self.token = token or CancellationToken()
        self.notify = notify or (lambda message: None)
        self.clock = clock
        cables = list(cables)
        self.state = BatchState(cables=cables, results=[None] * len(cables))

    @property
    def registry(self) -> RacewayRegistry:
        return self.engine.registry

    @property
    def status(self) -> str:
        return self.state.status

    def start(self) -> str:
        if self.state.status != IDLE:
            raise BatchStateError(f"Cannot start a batch that is {self.state.status}")
        logger.info(f"Batch started: {len(self.state.cables)} cables, {len(self.registry)} raceways")
        self.engine.prepare_base_graph()
        self.state.start_time = self.clock()
        self.state.status = RUNNING
        return self._process()

    def cancel(self) -> None:
        self.token.cancel()

    def resume(self, reset_token: bool = True) -> str:
        if self.state.status != CANCELLED:
            raise BatchStateError(f"Cannot resume a batch that is {self.state.status}")
        if reset_token:
            self.token.clear()
        now = self.clock()
        self.state.paused_duration += now - (self.state.pause_start if self.state.pause_start is not None else now)
        self.state.pause_start = None
        self.state.status = RUNNING
        logger.info(f"Batch resumed at cable {self.state.index + 1}/{len(self.state.cables)}")
        return self._process()

    def _process(self) -> str:
        state = self.state
        total = len(state.cables)
        for i in range(state.index, total):
            if self.token.is_cancelled:
                state.index = i
                state.pause_start = self.clock()
                state.status = CANCELLED
                logger.info(f"Batch cancelled after {i}/{total} cables")
                self.notify({"type": "cancelled", "completed": i, "total": total})
                return state.status

            state.results[i] = self._route(state.cables[i])
            state.index = i + 1
            self.notify({"type": "progress", "completed": i + 1, "total": total})

        state.status = DONE
        message = self.done_message()
        failed = sum(1 for r in state.results if r is not None and not r.success)
        logger.info(f"Batch done: {total - failed}/{total} cables routed in {message['wallTime']:.1f} ms")
        self.notify(message)
        return state.status

    def _route(self, cable: CableSpec) -> RouteResult:
        cable_area = cable.area
        result = self.engine.route_cable(cable)
        if not result.success:
            logger.info(f"Cable {cable.id} not routed: {result.error}")
            return result

        if result.locked:
            self._check_forced_fill(cable, result, cable_area)
        self.registry.update_fill(result.tray_segments, cable_area)
        self.registry.record_shared_field_segments(result.route_segments)
        self.state.all_routes.append({
            "label": cable.id,
            "segments": [s.to_dict() for s in result.route_segments],
            "startPoint": list(cable.start),
            "endPoint": list(cable.end),
            "startTag": cable.start_tag,
            "endTag": cable.end_tag,
            "allowed_cable_group": cable.allowed_cable_group,
        })
        return result

    def _check_forced_fill(self, cable: CableSpec, result: RouteResult, cable_area: float) -> None:
        """Flag raceways a locked route overfills. The fill is still applied."""
        for raceway_id in result.tray_segments:
            segment = self.registry.get(raceway_id)
            if segment is None or self.registry.has_capacity(segment, cable_area):
                continue
            result.exclusions.append(Exclusion(raceway_id, FORCED_OVER_CAPACITY))
            logger.warning(
                f"Locked cable {cable.id} forced over capacity on raceway {raceway_id}: "
                f"{segment.current_fill + cable_area:.3f} of {segment.max_fill:.3f}"
            )

    @property
    def wall_time(self) -> float:
        """Elapsed milliseconds, paused time excluded."""
        return (self.clock() - self.state.start_time - self.state.paused_duration) * 1000

    def results_as_dicts(self) -> List[Optional[Dict[str, Any]]]:
        return [
            {"cable": cable.id, **result.to_dict()} if result is not None else None
            for cable, result in zip(self.state.cables, self.state.results)
        ]

    def done_message(self) -> Dict[str, Any]:
        return {
            "type": "done",
            "results": self.results_as_dicts(),
            "allRoutes": list(self.state.all_routes),
            "utilization": self.registry.utilization(),
            "finalTrays": self.registry.snapshot(),
            "wallTime": self.wall_time,
        }


class BatchWorker:
    """Runs batches on a background thread and talks to the host by messages.

    Host messages: ``{"type": "start", "raceways", "cables", "options"}``,
    ``{"type": "cancel"}``, ``{"type": "resume"}``, ``{"type": "stop"}``.
    Worker messages are the router notifications (progress, cancelled, done)
    plus ``{"type": "error", "message"}`` if a batch crashes.

    The thread only lives while there are messages to handle: it exits once
    the inbox is empty (batch done, failed or cancelled) and the next posted
    message starts a fresh one. The router and its results stay on the worker.
    """

    def __init__(self, on_message: Optional[Notify] = None):
        self._inbox: "queue.Queue[Dict[str, Any]]" = queue.Queue()
        self._outbox: "queue.Queue[Dict[str, Any]]" = queue.Queue()
        self._on_message = on_message
        self._token = CancellationToken()
        # guards _thread and the decision to let it exit
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        # owned by the worker thread
        self._router: Optional[BatchRouter] = None

    @property
    def status(self) -> str:
        router = self._router
        return router.status if router is not None else IDLE

    @property
    def router(self) -> Optional[BatchRouter]:
        return self._router

    @property
    def is_alive(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def post_message(self, message: Dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == "cancel":
            # polled by the running batch at its next cable boundary
            self._token.cancel()
            return
        if kind == "start":
            self._token = CancellationToken()
            message = {**message, "token": self._token}
        elif kind == "resume":
            self._token.clear()
        with self._lock:
            self._inbox.put(message)
            if self._thread is None:
                self._thread = threading.Thread(target=self._run, name="batch-route-worker", daemon=True)
                self._thread.start()

    def start(self, raceways, cables, options: Optional[RoutingOptions] = None) -> None:
        self.post_message({"type": "start", "raceways": raceways, "cables": cables, "options": options})

    def cancel(self) -> None:
        self.post_message({"type": "cancel"})

    def resume(self) -> None:
        self.post_message({"type": "resume"})

    def stop(self, timeout: Optional[float] = None) -> None:
        self._token.cancel()
        with self._lock:
            thread = self._thread
            if thread is not None:
                self._inbox.put({"type": "stop"})
        if thread is not None:
            thread.join(timeout)

    def messages(self) -> List[Dict[str, Any]]:
        """Drain every message emitted so far."""
        drained = []
        while True:
            try:
                drained.append(self._outbox.get_nowait())
            except queue.Empty:
                return drained

    def next_message(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        return self._outbox.get(timeout=timeout)

    def _emit(self, message: Dict[str, Any]) -> None:
        self._outbox.put(message)
        if self._on_message is not None:
            self._on_message(message)

    def _run(self) -> None:
        while True:
            message = self._inbox.get()
            kind = message.get("type")
            if kind == "stop":
                with self._lock:
                    # anything queued behind a stop is dropped
                    while not self._inbox.empty():
                        self._inbox.get_nowait()
                    self._thread = None
                return
            self._handle(message)
            with self._lock:
                if self._inbox.empty():
                    self._thread = None
                    return

    def _handle(self, message: Dict[str, Any]) -> None:
        kind = message.get("type")
        try:
            if kind == "start":
                # a new start always discards the previous batch
                self._router = BatchRouter(
                    message["raceways"],
                    message["cables"],
                    options=message.get("options"),
                    notify=self._emit,
                    token=message["token"],
                )
                self._router.start()
            elif kind == "resume":
                if self._router is None:
                    logger.warning("Resume requested with no batch loaded")
                    return
                self._router.resume(reset_token=False)
            else:
                logger.warning(f"Unknown worker message type: {kind!r}")
        except BatchStateError as exc:
            logger.warning(str(exc))
        except Exception as exc:
            logger.exception("Batch worker failed")
            self._emit({"type": "error", "message": str(exc)})
