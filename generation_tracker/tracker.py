"""Generation tracker: registry, poller, reducer and persistence wired together.

A GenerationTracker is an explicit context object. Create one per process
(or per test), start it inside a running event loop, and close it on teardown:

    async with GenerationTracker(source) as tracker:
        tracker.add_job("r1", JobKind.IMAGE)
"""

import asyncio
import logging
from datetime import timedelta
from typing import Any, Callable, List, Optional

from generation_tracker.config import Settings
from generation_tracker.jobs import selectors
from generation_tracker.jobs.models import (
    ComparisonMetadata,
    ConnectionStatus,
    JobKind,
    JobRecord,
    JobStatus,
    StatusPayload,
)
from generation_tracker.jobs.poller import DEFAULT_POLL_INTERVAL, Poller
from generation_tracker.jobs.reducer import StatusReducer
from generation_tracker.jobs.registry import Clock, JobRegistry, RegistryListener, utcnow
from generation_tracker.jobs.status_source import HttpStatusSource, StatusSource
from generation_tracker.storage.job_state import JobStateStore

logger = logging.getLogger(__name__)

STALE_JOB_THRESHOLD = timedelta(minutes=30)
DEFAULT_SWEEP_INTERVAL = 60.0


class GenerationTracker:
    """Tracks generation jobs and polls their status until they finish."""

    def __init__(
        self,
        source: StatusSource,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        stale_threshold: timedelta = STALE_JOB_THRESHOLD,
        sweep_interval: Optional[float] = DEFAULT_SWEEP_INTERVAL,
        state_store: Optional[JobStateStore] = None,
        clock: Clock = utcnow,
    ):
        """
        sweep_interval: seconds between automatic stale sweeps while started,
            or None to sweep only on demand.
        state_store: when given, every registry change is saved there and
            start() resumes the saved jobs.
        """
        self.registry = JobRegistry(clock=clock)
        self.poller = Poller(
            source,
            on_status=self._on_status,
            on_missing=self._on_missing,
            interval=poll_interval,
        )
        self.reducer = StatusReducer(self.registry, stop_polling=self.poller.stop)
        self._source = source
        self._stale_threshold = stale_threshold
        self._sweep_interval = sweep_interval
        self._state_store = state_store
        self._sweeper: Optional[asyncio.Task] = None
        # Nothing is written until saved state has been merged in, so jobs
        # added before start() cannot overwrite it
        self._state_loaded = False
        self._started = False

        if state_store is not None:
            self.registry.subscribe(self._persist)

    async def __aenter__(self) -> "GenerationTracker":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Resume saved jobs and start the stale sweeper."""
        if self._started:
            return
        self._started = True
        if self._state_store is not None:
            self.rehydrate()
        if self._sweep_interval:
            self._sweeper = asyncio.create_task(self._sweep_loop(), name="stale-job-sweeper")
        logger.info("Generation tracker started (%d job(s) tracked)", len(self.registry))

    async def close(self) -> None:
        """Stop all polling and release the status source."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        await self.poller.aclose()
        await self._source.aclose()
        self._started = False
        logger.info("Generation tracker stopped")

    # ------------------------------------------------------------------
    # Job actions
    # ------------------------------------------------------------------

    def add_job(
        self,
        request_id: str,
        kind: JobKind = JobKind.IMAGE,
        status: JobStatus = JobStatus.QUEUED,
        progress: int = 0,
        message: Optional[str] = None,
        prompt: Optional[str] = None,
        comparison: Optional[ComparisonMetadata] = None,
    ) -> JobRecord:
        """Register a job and start polling it. Raises DuplicateJobError."""
        record = self.registry.register(
            request_id,
            kind=kind,
            status=status,
            progress=progress,
            message=message,
            prompt=prompt,
            comparison=comparison,
        )
        if not record.is_terminal:
            self.poller.start(request_id, kind)
        return record

    def track(self, request_id: str, kind: JobKind = JobKind.IMAGE) -> JobRecord:
        """Return the tracked job, adding it as queued if it is not tracked yet."""
        existing = self.registry.get(request_id)
        if existing is not None:
            return existing
        return self.add_job(request_id, kind)

    def update_job(self, request_id: str, **updates: Any) -> Optional[JobRecord]:
        """Merge fields into a job; polling stops once it is terminal."""
        record = self.registry.merge(request_id, updates)
        if record is not None and record.is_terminal:
            self.poller.stop(request_id)
        return record

    def remove_job(self, request_id: str) -> bool:
        self.poller.stop(request_id)
        return self.registry.remove(request_id)

    def clear_completed_jobs(self) -> int:
        """Drop every complete or failed job. Returns count removed."""
        finished = [job.request_id for job in self.registry.records() if job.is_terminal]
        for request_id in finished:
            self.remove_job(request_id)
        return len(finished)

    def sweep_stale(self, max_age: Optional[timedelta] = None) -> int:
        """Stop and drop non-terminal jobs older than max_age. Returns count removed."""
        stale = self.registry.stale_ids(max_age if max_age is not None else self._stale_threshold)
        for request_id in stale:
            self.remove_job(request_id)
        if stale:
            logger.info("Swept %d stale job(s)", len(stale))
        return len(stale)

    def rehydrate(self) -> int:
        """Load saved jobs, drop stale ones and resume polling the rest.

        Saved jobs are added next to the ones already tracked; a job tracked
        in memory wins over its saved copy. Calling this again is harmless.
        Returns the number of jobs whose polling resumed.
        """
        if self._state_store is None:
            return 0
        added = self.registry.load_records(self._state_store.load())
        self._state_loaded = True
        self._state_store.save(self.registry.items())

        now = self.registry.now()
        resumed = 0
        for request_id, job in self.registry.items():
            if job.is_terminal:
                continue
            if job.age(now) > self._stale_threshold:
                self.remove_job(request_id)
                continue
            if self.poller.start(request_id, job.kind):
                resumed += 1
        logger.info("Rehydrated %d job(s), resumed polling for %d", len(added), resumed)
        return resumed

    def subscribe(self, listener: RegistryListener) -> Callable[[], None]:
        return self.registry.subscribe(listener)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def connection_status(self) -> ConnectionStatus:
        return self.poller.connection_status

    def get_job(self, request_id: str) -> Optional[JobRecord]:
        return selectors.job_by_id(self.registry, request_id)

    def all_jobs(self) -> List[JobRecord]:
        return self.registry.records()

    def active_jobs(self) -> List[JobRecord]:
        return selectors.active_jobs(self.registry)

    def completed_jobs(self) -> List[JobRecord]:
        return selectors.completed_jobs(self.registry)

    def failed_jobs(self) -> List[JobRecord]:
        return selectors.failed_jobs(self.registry)

    def job_count(self) -> int:
        return selectors.job_count(self.registry)

    def active_job_count(self) -> int:
        return selectors.active_job_count(self.registry)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_status(self, request_id: str, payload: StatusPayload) -> None:
        self.reducer.apply(request_id, payload)

    def _on_missing(self, request_id: str) -> None:
        self.registry.remove(request_id)

    def _persist(self, request_id: str, record: Optional[JobRecord]) -> None:
        if not self._state_loaded:
            return
        self._state_store.save(self.registry.items())

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                self.sweep_stale()
            except Exception:
                logger.exception("Stale job sweep failed")


def build_tracker(settings: Settings) -> GenerationTracker:
    """Create a tracker wired to the configured status endpoint and storage."""
    source = HttpStatusSource(
        settings.status_base_url,
        timeout=settings.status_request_timeout_seconds,
    )
    state_store = None
    if settings.persistence_enabled:
        state_store = JobStateStore(
            settings.persistence_name,
            base_dir=settings.persistence_dir or None,
        )
    return GenerationTracker(
        source,
        poll_interval=settings.poll_interval_seconds,
        stale_threshold=settings.stale_job_threshold,
        sweep_interval=settings.sweep_interval_seconds,
        state_store=state_store,
    )
