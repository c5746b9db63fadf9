"""Applies status payloads to job records."""

import logging
from typing import Callable, Optional

from generation_tracker.jobs.models import JobRecord, JobStatus, StatusPayload
from generation_tracker.jobs.registry import JobRegistry

logger = logging.getLogger(__name__)


class StatusReducer:
    """Merges poll responses into the registry and ends polling on terminal states.

    Result and error consistency is enforced by JobRecord itself, so a payload
    reporting a setId while still processing leaves no result behind.
    """

    def __init__(self, registry: JobRegistry, stop_polling: Callable[[str], None]):
        self._registry = registry
        self._stop_polling = stop_polling

    def apply(self, request_id: str, payload: StatusPayload) -> Optional[JobRecord]:
        current = self._registry.get(request_id)
        if current is None:
            logger.debug("Ignoring status for untracked job %s", request_id)
            return None
        if current.is_terminal:
            # Late response after the job already finished
            self._stop_polling(request_id)
            return current

        record = self._registry.merge(request_id, payload.to_updates())
        if record is not None and record.is_terminal:
            if record.status == JobStatus.FAILED:
                logger.info("Job %s failed: %s", request_id, record.error_detail)
            else:
                logger.info("Job %s complete (set %s)", request_id, record.result_reference)
            self._stop_polling(request_id)
        return record
