"""Health check endpoint."""

import platform
import sys

from fastapi import APIRouter

from generation_tracker.api.v1 import jobs as jobs_api

router = APIRouter()


@router.get("/health")
async def health_check():
    """Service health, status endpoint connectivity and job counts."""
    tracker = jobs_api.get_tracker()
    if tracker is None:
        return {"status": "starting", "connection_status": None, "jobs": None}

    return {
        "status": "healthy",
        "connection_status": tracker.connection_status.value,
        "jobs": {
            "total": tracker.job_count(),
            "active": tracker.active_job_count(),
            "polling": len(tracker.poller.polling_ids()),
        },
        "python_version": sys.version,
        "platform": platform.platform(),
    }
