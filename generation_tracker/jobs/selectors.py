"""Derived views over a job registry. Order follows registration order."""

from typing import List, Optional

from generation_tracker.jobs.models import (
    ACTIVE_STATUSES,
    RESULT_STATUSES,
    JobRecord,
    JobStatus,
)
from generation_tracker.jobs.registry import JobRegistry


def active_jobs(registry: JobRegistry) -> List[JobRecord]:
    return [job for job in registry.records() if job.status in ACTIVE_STATUSES]


def completed_jobs(registry: JobRegistry) -> List[JobRecord]:
    return [job for job in registry.records() if job.status in RESULT_STATUSES]


def failed_jobs(registry: JobRegistry) -> List[JobRecord]:
    return [job for job in registry.records() if job.status == JobStatus.FAILED]


def job_by_id(registry: JobRegistry, request_id: str) -> Optional[JobRecord]:
    return registry.get(request_id)


def job_count(registry: JobRegistry) -> int:
    return len(registry)


def active_job_count(registry: JobRegistry) -> int:
    return len(active_jobs(registry))
