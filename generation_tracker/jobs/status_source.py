"""Status source interface and HTTP implementation."""

import logging
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import quote

import httpx

from generation_tracker.jobs.errors import JobNotFoundError, StatusUnavailableError
from generation_tracker.jobs.models import JobKind, StatusPayload

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class StatusSource(ABC):
    """Abstract interface for fetching a generation job's status."""

    @abstractmethod
    async def fetch_status(self, request_id: str, kind: JobKind) -> StatusPayload:
        """Fetch the current status of a job.

        Raises JobNotFoundError when the job is gone for good and
        StatusUnavailableError for anything worth retrying.
        """
        ...

    async def aclose(self) -> None:
        """Release any held connections."""


class HttpStatusSource(StatusSource):
    """Polls GET <base_url>/{request_id}[?type=video] with httpx."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def endpoint(self, request_id: str) -> str:
        return f"{self.base_url}/{quote(request_id, safe='')}"

    async def fetch_status(self, request_id: str, kind: JobKind) -> StatusPayload:
        params = {"type": "video"} if kind == JobKind.VIDEO else None
        try:
            response = await self._client.get(self.endpoint(request_id), params=params)
        except httpx.HTTPError as e:
            raise StatusUnavailableError(f"Status request for {request_id} failed: {e}") from e

        if response.status_code == 404:
            raise JobNotFoundError(request_id)
        if response.status_code != 200:
            raise StatusUnavailableError(
                f"Status request for {request_id} returned {response.status_code}"
            )

        # Undecodable or invalid bodies are retried like any other transient failure
        try:
            return StatusPayload.model_validate(response.json())
        except ValueError as e:
            raise StatusUnavailableError(f"Malformed status for {request_id}: {e}") from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
