import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Tuple, Union

import pytest

from generation_tracker.jobs.errors import StatusUnavailableError
from generation_tracker.jobs.models import JobKind, StatusPayload
from generation_tracker.jobs.registry import JobRegistry
from generation_tracker.jobs.status_source import StatusSource
from generation_tracker.tracker import GenerationTracker


class FakeClock:
    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now += timedelta(**kwargs)


class FakeStatusSource(StatusSource):
    """Serves queued responses per request id; the last one repeats.

    A response is either a payload dict or an exception to raise. With nothing
    queued every fetch fails transiently.
    """

    def __init__(self) -> None:
        self.responses: Dict[str, List[Union[Dict[str, Any], Exception]]] = {}
        self.calls: List[Tuple[str, JobKind]] = []
        self.closed = False

    def queue(self, request_id: str, *responses: Union[Dict[str, Any], Exception]) -> None:
        self.responses.setdefault(request_id, []).extend(responses)

    def call_count(self, request_id: str) -> int:
        return sum(1 for rid, _ in self.calls if rid == request_id)

    async def fetch_status(self, request_id: str, kind: JobKind) -> StatusPayload:
        self.calls.append((request_id, kind))
        pending = self.responses.get(request_id)
        if not pending:
            raise StatusUnavailableError(f"no status queued for {request_id}")
        response = pending.pop(0) if len(pending) > 1 else pending[0]
        if isinstance(response, Exception):
            raise response
        return StatusPayload.model_validate(response)

    async def aclose(self) -> None:
        self.closed = True


async def settle(rounds: int = 10) -> None:
    """Let freshly created poll tasks run up to their first sleep."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock: FakeClock) -> JobRegistry:
    return JobRegistry(clock=clock)


@pytest.fixture
def source() -> FakeStatusSource:
    return FakeStatusSource()


@pytest.fixture
def tracker(source: FakeStatusSource, clock: FakeClock) -> GenerationTracker:
    # Long interval: after the immediate first poll, tests drive polls themselves
    return GenerationTracker(source, poll_interval=3600, sweep_interval=None, clock=clock)
