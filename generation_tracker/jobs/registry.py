"""In-memory job registry keyed by request id."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from generation_tracker.jobs.errors import DuplicateJobError
from generation_tracker.jobs.models import (
    ComparisonMetadata,
    JobKind,
    JobRecord,
    JobStatus,
)

logger = logging.getLogger(__name__)

# listener(request_id, record) -- record is None when the job was removed
RegistryListener = Callable[[str, Optional[JobRecord]], None]
Clock = Callable[[], datetime]

_IMMUTABLE_FIELDS = ("request_id", "kind", "created_at")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobRegistry:
    """Authoritative mapping from request id to job record.

    Records are replaced, never mutated in place, so a record handed out by
    get() is a stable snapshot. Every mutation is reported to subscribers.
    """

    def __init__(self, clock: Clock = utcnow):
        self._jobs: Dict[str, JobRecord] = {}
        self._listeners: List[RegistryListener] = []
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def register(
        self,
        request_id: str,
        kind: JobKind = JobKind.IMAGE,
        status: JobStatus = JobStatus.QUEUED,
        progress: int = 0,
        message: Optional[str] = None,
        prompt: Optional[str] = None,
        comparison: Optional[ComparisonMetadata] = None,
    ) -> JobRecord:
        """Insert a new record stamped with the current time.

        Raises DuplicateJobError if request_id is already tracked.
        """
        if request_id in self._jobs:
            raise DuplicateJobError(request_id)
        record = JobRecord(
            request_id=request_id,
            kind=kind,
            status=status,
            progress=progress,
            message=message,
            prompt=prompt,
            comparison=comparison,
            created_at=self._clock(),
        )
        self._jobs[request_id] = record
        logger.debug("Registered %s job %s", kind.value, request_id)
        self._notify(request_id, record)
        return record

    def merge(self, request_id: str, updates: Mapping[str, Any]) -> Optional[JobRecord]:
        """Shallow-merge updates into an existing record. No-op if absent.

        Unknown field names and identity fields raise ValueError. An update
        that changes nothing is not reported to subscribers.
        """
        existing = self._jobs.get(request_id)
        if existing is None:
            return None
        unknown = [name for name in updates if name not in JobRecord.model_fields]
        if unknown:
            raise ValueError(f"Unknown job field(s): {', '.join(unknown)}")
        frozen = [name for name in _IMMUTABLE_FIELDS if name in updates]
        if frozen:
            raise ValueError(f"Cannot change {', '.join(frozen)} of job '{request_id}'")

        data = existing.model_dump()
        data.update(updates)
        record = JobRecord.model_validate(data)
        if record == existing:
            return existing
        self._jobs[request_id] = record
        self._notify(request_id, record)
        return record

    def remove(self, request_id: str) -> bool:
        if self._jobs.pop(request_id, None) is None:
            return False
        logger.debug("Removed job %s", request_id)
        self._notify(request_id, None)
        return True

    def stale_ids(self, max_age: timedelta) -> List[str]:
        """Non-terminal jobs created more than max_age ago."""
        now = self._clock()
        return [
            request_id
            for request_id, job in self._jobs.items()
            if not job.is_terminal and job.age(now) > max_age
        ]

    def sweep_stale(self, max_age: timedelta) -> int:
        """Remove stale non-terminal jobs. Returns count removed."""
        removed = 0
        for request_id in self.stale_ids(max_age):
            if self.remove(request_id):
                removed += 1
        if removed:
            logger.info("Swept %d stale job(s)", removed)
        return removed

    def load_records(self, records: Mapping[str, JobRecord]) -> List[str]:
        """Add records loaded from storage. Returns the ids that were added.

        Jobs already tracked in memory are newer than anything saved, so
        they are kept as they are.
        """
        added = [request_id for request_id in records if request_id not in self._jobs]
        for request_id in added:
            self._jobs[request_id] = records[request_id]
            self._notify(request_id, records[request_id])
        return added

    def subscribe(self, listener: RegistryListener) -> Callable[[], None]:
        """Call listener after every mutation. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get(self, request_id: str) -> Optional[JobRecord]:
        return self._jobs.get(request_id)

    def records(self) -> List[JobRecord]:
        return list(self._jobs.values())

    def items(self) -> List[Tuple[str, JobRecord]]:
        return list(self._jobs.items())

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._jobs))

    def _notify(self, request_id: str, record: Optional[JobRecord]) -> None:
        for listener in list(self._listeners):
            listener(request_id, record)
