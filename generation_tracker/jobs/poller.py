"""Per-job status polling on the asyncio event loop.

One background task per tracked job. Each task fetches the status, hands it
on, then sleeps for the poll interval, so a job never has two requests in
flight at once.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from generation_tracker.jobs.errors import JobNotFoundError, StatusUnavailableError
from generation_tracker.jobs.models import ConnectionStatus, JobKind, StatusPayload
from generation_tracker.jobs.status_source import StatusSource

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0

StatusHandler = Callable[[str, StatusPayload], None]
MissingHandler = Callable[[str], None]


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class Poller:
    """Owns every poll task and the shared connection status."""

    def __init__(
        self,
        source: StatusSource,
        on_status: StatusHandler,
        on_missing: MissingHandler,
        interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self._source = source
        self._on_status = on_status
        self._on_missing = on_missing
        self._interval = interval
        self._tasks: Dict[str, asyncio.Task] = {}
        self._stopped: List[asyncio.Task] = []
        self.connection_status = ConnectionStatus.DISCONNECTED

    @property
    def interval(self) -> float:
        return self._interval

    def start(self, request_id: str, kind: JobKind) -> bool:
        """Begin polling a job. Returns False if it was already being polled.

        Must be called with a running event loop.
        """
        if request_id in self._tasks:
            return False
        task = asyncio.get_running_loop().create_task(
            self._poll_loop(request_id, kind), name=f"poll-{request_id}"
        )
        self._tasks[request_id] = task
        logger.debug("Started polling %s job %s", kind.value, request_id)
        return True

    def stop(self, request_id: str) -> None:
        """Stop polling a job. Idempotent."""
        task = self._tasks.pop(request_id, None)
        if task is None:
            return
        # A task stopping itself just falls out of its loop
        if task is not _current_task():
            task.cancel()
            self._stopped = [t for t in self._stopped if not t.done()]
            self._stopped.append(task)
        logger.debug("Stopped polling job %s", request_id)

    def stop_all(self) -> None:
        for request_id in list(self._tasks):
            self.stop(request_id)

    async def aclose(self) -> None:
        """Stop every task and wait for the cancellations to land."""
        self.stop_all()
        stopped, self._stopped = self._stopped, []
        for task in stopped:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def is_polling(self, request_id: str) -> bool:
        return request_id in self._tasks

    def polling_ids(self) -> List[str]:
        return list(self._tasks)

    async def poll_once(self, request_id: str, kind: JobKind) -> bool:
        """Fetch one status and dispatch it. Returns True on success."""
        try:
            payload = await self._source.fetch_status(request_id, kind)
        except JobNotFoundError:
            logger.warning("Job %s not found, dropping it", request_id)
            self.stop(request_id)
            self._on_missing(request_id)
            return False
        except StatusUnavailableError as e:
            logger.warning("Polling error: %s", e)
            self.connection_status = ConnectionStatus.DISCONNECTED
            return False

        self.connection_status = ConnectionStatus.CONNECTED
        self._on_status(request_id, payload)
        return True

    async def _poll_loop(self, request_id: str, kind: JobKind) -> None:
        """Poll until stopped. The first poll runs immediately."""
        task = _current_task()
        while self._tasks.get(request_id) is task:
            try:
                await self.poll_once(request_id, kind)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Unexpected error while polling job %s", request_id)

            if self._tasks.get(request_id) is not task:
                break
            await asyncio.sleep(self._interval)
