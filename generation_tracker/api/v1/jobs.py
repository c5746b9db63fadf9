"""Job tracking API: register jobs, read progress, dismiss finished jobs."""

from enum import Enum
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Response
from pydantic import BaseModel

from generation_tracker.jobs.errors import DuplicateJobError
from generation_tracker.jobs.models import JobKind, JobRecord

router = APIRouter()

# Set by main.py during lifespan
_tracker = None


def set_tracker(tracker):
    global _tracker
    _tracker = tracker


def get_tracker():
    return _tracker


def _require_tracker():
    if _tracker is None:
        raise HTTPException(status_code=503, detail="Generation tracker not initialized")
    return _tracker


class JobView(str, Enum):
    ALL = "all"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class JobRegisterRequest(BaseModel):
    request_id: str
    kind: JobKind = JobKind.IMAGE
    prompt: Optional[str] = None


class JobListResponse(BaseModel):
    jobs: List[JobRecord]
    count: int
    active_count: int


class RemovedResponse(BaseModel):
    removed: int


@router.post("/jobs", response_model=JobRecord, status_code=201)
async def register_job(request: JobRegisterRequest):
    """Start tracking a submitted generation request."""
    tracker = _require_tracker()
    try:
        return tracker.add_job(request.request_id, request.kind, prompt=request.prompt)
    except DuplicateJobError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/jobs", response_model=JobListResponse)
async def list_jobs(view: JobView = JobView.ALL):
    tracker = _require_tracker()
    if view == JobView.ACTIVE:
        jobs = tracker.active_jobs()
    elif view == JobView.COMPLETED:
        jobs = tracker.completed_jobs()
    elif view == JobView.FAILED:
        jobs = tracker.failed_jobs()
    else:
        jobs = tracker.all_jobs()
    return JobListResponse(
        jobs=jobs,
        count=tracker.job_count(),
        active_count=tracker.active_job_count(),
    )


@router.post("/jobs/clear-completed", response_model=RemovedResponse)
async def clear_completed_jobs():
    """Dismiss every complete or failed job."""
    tracker = _require_tracker()
    return RemovedResponse(removed=tracker.clear_completed_jobs())


@router.post("/jobs/sweep", response_model=RemovedResponse)
async def sweep_stale_jobs():
    """Drop unfinished jobs past the stale threshold."""
    tracker = _require_tracker()
    return RemovedResponse(removed=tracker.sweep_stale())


@router.get("/jobs/{request_id}", response_model=JobRecord)
async def get_job(request_id: str):
    tracker = _require_tracker()
    job = tracker.get_job(request_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.delete("/jobs/{request_id}", status_code=204)
async def remove_job(request_id: str):
    """Stop tracking a job. Removing an unknown job is not an error."""
    tracker = _require_tracker()
    tracker.remove_job(request_id)
    return Response(status_code=204)
