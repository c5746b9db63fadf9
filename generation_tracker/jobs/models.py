"""Job record data model for generation progress tracking."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class JobKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"
    PARTIAL = "partial"


class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


# No polling once a job reaches one of these
TERMINAL_STATUSES = frozenset({JobStatus.COMPLETE, JobStatus.FAILED})
ACTIVE_STATUSES = frozenset({JobStatus.QUEUED, JobStatus.PROCESSING})
# Statuses that may carry a result_reference
RESULT_STATUSES = frozenset({JobStatus.COMPLETE, JobStatus.PARTIAL})

DEFAULT_FAILURE_MESSAGE = "Generation failed"


def _clamp_progress(value: Any) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return max(0, min(100, int(value)))
    return value


class ModelStatus(BaseModel):
    """Per-model sub status of a multi-model comparison run."""
    model_config = ConfigDict(populate_by_name=True)

    status: str
    progress: int = 0
    set_id: Optional[str] = Field(default=None, alias="setId")
    error: Optional[str] = None


class ComparisonMetadata(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    models: List[str] = Field(default_factory=list)
    model_statuses: Dict[str, ModelStatus] = Field(default_factory=dict)
    total_models: int = 0
    completed_models: int = 0


class JobRecord(BaseModel):
    """One in-flight or finished generation request."""
    request_id: str
    kind: JobKind = JobKind.IMAGE
    status: JobStatus = JobStatus.QUEUED
    progress: int = Field(default=0, ge=0, le=100)
    message: Optional[str] = None
    prompt: Optional[str] = None
    result_reference: Optional[str] = None
    error_detail: Optional[str] = None
    created_at: datetime
    comparison: Optional[ComparisonMetadata] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def has_result(self) -> bool:
        return self.status in RESULT_STATUSES

    def age(self, now: datetime) -> timedelta:
        return now - self.created_at

    @model_validator(mode="after")
    def keep_outcome_consistent(self) -> "JobRecord":
        # A result only accompanies complete/partial; a failure always has a detail
        if self.status not in RESULT_STATUSES:
            self.result_reference = None
        if self.status == JobStatus.FAILED:
            if not self.error_detail:
                self.error_detail = self.message or DEFAULT_FAILURE_MESSAGE
        else:
            self.error_detail = None
        return self


class StatusPayload(BaseModel):
    """Body of GET <status-base>/{requestId}.

    Field names follow the endpoint's camelCase JSON; anything the tracker
    does not use (requestId, userId, images, timestamps) is ignored.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore", protected_namespaces=())

    status: JobStatus
    progress: Optional[int] = None
    message: Optional[str] = None
    set_id: Optional[str] = Field(default=None, alias="setId")
    error: Optional[str] = None
    comparison_mode: Optional[bool] = Field(default=None, alias="comparisonMode")
    models: Optional[List[str]] = None
    model_statuses: Optional[Dict[str, ModelStatus]] = Field(default=None, alias="modelStatuses")
    total_models: Optional[int] = Field(default=None, alias="totalModels")
    completed_models: Optional[int] = Field(default=None, alias="completedModels")

    @field_validator("progress", mode="before")
    @classmethod
    def clamp_progress(cls, value: Any) -> Any:
        return _clamp_progress(value)

    def comparison_metadata(self) -> Optional[ComparisonMetadata]:
        if not self.comparison_mode and self.models is None and self.model_statuses is None:
            return None
        models = self.models or []
        return ComparisonMetadata(
            models=models,
            model_statuses=self.model_statuses or {},
            total_models=self.total_models if self.total_models is not None else len(models),
            completed_models=self.completed_models or 0,
        )

    def to_updates(self) -> Dict[str, Any]:
        """Record fields carried by this payload, keyed by JobRecord names."""
        updates: Dict[str, Any] = {"status": self.status}
        if self.progress is not None:
            updates["progress"] = self.progress
        if self.message is not None:
            updates["message"] = self.message
        if self.set_id is not None:
            updates["result_reference"] = self.set_id
        if self.error is not None:
            updates["error_detail"] = self.error
        comparison = self.comparison_metadata()
        if comparison is not None:
            updates["comparison"] = comparison
        return updates
