"""Tracker exceptions."""


class TrackerError(Exception):
    """Base class for generation tracker errors."""


class DuplicateJobError(TrackerError):
    """A job with this request id is already registered."""

    def __init__(self, request_id: str):
        super().__init__(f"Job '{request_id}' is already registered")
        self.request_id = request_id


class JobNotFoundError(TrackerError):
    """The status endpoint no longer knows this request id (HTTP 404)."""

    def __init__(self, request_id: str):
        super().__init__(f"Job '{request_id}' not found")
        self.request_id = request_id


class StatusUnavailableError(TrackerError):
    """Transient status fetch failure; the next poll retries."""
