import uuid
from typing import Dict

from fastapi import APIRouter, HTTPException, status

from ..batch import CANCELLED, DONE, BatchWorker
from ..config import settings
from ..engine import RoutingEngine
from ..exceptions import ScheduleError
from ..log import get_logger
from ..schemas import (
    BatchRequest,
    BatchStarted,
    BatchStatus,
    RouteRequest,
    RouteResultModel,
)
from ..shared_routes import find_common_field_routes

router = APIRouter()

logger = get_logger("api")

# Running and finished batch workers by job id, oldest first
_jobs: Dict[str, BatchWorker] = {}


def _get_job(job_id: str) -> BatchWorker:
    worker = _jobs.get(job_id)
    if worker is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Unknown batch job '{job_id}'")
    return worker


def _is_finished(worker: BatchWorker) -> bool:
    # cancelled jobs stay around until resumed or deleted
    return not worker.is_alive and worker.status != CANCELLED


def _prune_finished_jobs() -> None:
    finished = [job_id for job_id, worker in _jobs.items() if _is_finished(worker)]
    excess = len(finished) - settings.max_finished_jobs
    for job_id in finished[:max(excess, 0)]:
        del _jobs[job_id]
        logger.debug(f"Dropped finished batch job {job_id}")


# ----------------- SINGLE CABLE -----------------

@router.post("/route", response_model=RouteResultModel)
def route_cable(request: RouteRequest) -> RouteResultModel:
    """
    Route one cable against a raceway snapshot. A cable that cannot be routed
    is still a 200 response with ``success: false``.
    """
    try:
        options = request.options.to_options()
        engine = RoutingEngine.from_segments(request.raceway_segments(), options)
        result = engine.route_cable(request.cable.to_spec())
        return RouteResultModel(**result.to_dict())
    except (ScheduleError, ValueError) as ex:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(ex)) from ex
    except Exception as ex:
        logger.exception("Error in route_cable")
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Error routing cable: {ex}") from ex


# ----------------- BATCH -----------------

@router.post("/batch", response_model=BatchStarted, status_code=status.HTTP_202_ACCEPTED)
async def start_batch(request: BatchRequest) -> BatchStarted:
    try:
        raceways = request.raceway_segments()
        cables = request.cable_specs()
        options = request.options.to_options()
    except (ScheduleError, ValueError) as ex:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(ex)) from ex
    if not cables:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Batch has no cables")

    _prune_finished_jobs()
    job_id = uuid.uuid4().hex
    worker = BatchWorker()
    worker.start(raceways, cables, options)
    _jobs[job_id] = worker
    logger.info(f"Batch job {job_id} queued with {len(cables)} cables")
    return BatchStarted(jobId=job_id, total=len(cables))


@router.get("/batch/{job_id}", response_model=BatchStatus)
async def batch_status(job_id: str) -> BatchStatus:
    """Job state plus every worker message emitted since the last poll."""
    worker = _get_job(job_id)
    messages = worker.messages()
    state = worker.status
    common = None
    if state == DONE and worker.router is not None:
        batch = worker.router
        diameters = {cable.id: cable.diameter for cable in batch.state.cables}
        common = find_common_field_routes(batch.state.all_routes, diameters=diameters)
    return BatchStatus(jobId=job_id, state=state, messages=messages, commonFieldRoutes=common)


@router.post("/batch/{job_id}/cancel", response_model=BatchStatus)
async def cancel_batch(job_id: str) -> BatchStatus:
    """Request cancellation; the state turns ``cancelled`` at the next cable boundary."""
    worker = _get_job(job_id)
    if worker.status == DONE:
        raise HTTPException(status.HTTP_409_CONFLICT, f"Batch job '{job_id}' is already done")
    worker.cancel()
    return BatchStatus(jobId=job_id, state=worker.status)


@router.post("/batch/{job_id}/resume", response_model=BatchStatus)
async def resume_batch(job_id: str) -> BatchStatus:
    worker = _get_job(job_id)
    if worker.status != CANCELLED:
        raise HTTPException(
            status.HTTP_409_CONFLICT, f"Batch job '{job_id}' is {worker.status}, only a cancelled job can resume"
        )
    worker.resume()
    return BatchStatus(jobId=job_id, state=worker.status)


@router.delete("/batch/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_batch(job_id: str) -> None:
    # runs in the threadpool; stop() joins the worker thread
    worker = _get_job(job_id)
    worker.stop(timeout=5)
    _jobs.pop(job_id, None)
