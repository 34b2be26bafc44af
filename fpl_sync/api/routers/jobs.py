"""Sync job status endpoints."""

from fastapi import APIRouter, Path, Query

from fpl_sync.api.deps import SchedulerDep
from fpl_sync.api.errors import not_found, validation_error
from fpl_sync.api.schemas import DataResponse
from fpl_sync.entities import REGISTRY
from fpl_sync.jobs import COORDINATOR_TAG, SYNC_TAG, JobStatus, parse_job_id

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("", response_model=DataResponse)
async def list_jobs(scheduler: SchedulerDep, status: JobStatus | None = Query(default=None)):
    """List jobs still within the retention window, oldest first."""
    jobs = [job.to_dict() for job in scheduler.jobs(status)]
    return {"data": jobs, "count": len(jobs)}


@router.get("/{job_id}", response_model=DataResponse, response_model_exclude_none=True)
async def get_job(scheduler: SchedulerDep, job_id: str = Path(..., max_length=128)):
    try:
        parsed = parse_job_id(job_id)
    except ValueError as e:
        raise validation_error(f"Malformed job id {job_id}") from e
    if parsed.kind not in REGISTRY or parsed.tag not in (SYNC_TAG, COORDINATOR_TAG):
        raise validation_error(f"Malformed job id {job_id}")

    job = scheduler.get(job_id)
    if job is None:
        raise not_found(f"Job {job_id} not found")
    return {"data": job.to_dict()}
