"""Local JSON persistence for tracked jobs, so tracking survives a restart."""

import json
import logging
import os
import tempfile
from typing import Any, Dict, Iterable, Optional, Tuple

from pydantic import ValidationError

from generation_tracker.jobs.models import JobRecord

logger = logging.getLogger(__name__)

STATE_VERSION = 0


class JobStateStore:
    """Saves job records to one namespaced JSON file.

    Layout: {"state": {"jobs": [[request_id, record], ...]}, "version": 0}.
    Only job records are stored; poll tasks and connection status are not.
    """

    def __init__(self, name: str, base_dir: Optional[str] = None):
        if base_dir:
            self._base_dir = base_dir
        else:
            self._base_dir = os.path.join(tempfile.gettempdir(), "generation_tracker")
        os.makedirs(self._base_dir, exist_ok=True)
        self.name = name

    @property
    def path(self) -> str:
        return os.path.join(self._base_dir, f"{self.name}.json")

    @staticmethod
    def dump(records: Iterable[Tuple[str, JobRecord]]) -> Dict[str, Any]:
        return {
            "state": {
                "jobs": [[request_id, job.model_dump(mode="json")] for request_id, job in records]
            },
            "version": STATE_VERSION,
        }

    @staticmethod
    def parse(document: Dict[str, Any]) -> Dict[str, JobRecord]:
        """Rebuild the request_id -> record mapping from a stored document."""
        jobs: Dict[str, JobRecord] = {}
        for request_id, raw in document.get("state", {}).get("jobs", []):
            jobs[request_id] = JobRecord.model_validate(raw)
        return jobs

    def save(self, records: Iterable[Tuple[str, JobRecord]]) -> bool:
        """Write records atomically. Returns False if the write failed."""
        document = self.dump(records)
        fd, tmp_path = tempfile.mkstemp(dir=self._base_dir, prefix=f".{self.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error("Failed to save job state to %s: %s", self.path, e)
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            return False
        return True

    def load(self) -> Dict[str, JobRecord]:
        """Read saved records. Missing or unreadable state yields no jobs."""
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                document = json.load(f)
            return self.parse(document)
        except (OSError, ValueError, TypeError, AttributeError, ValidationError) as e:
            logger.warning("Discarding unreadable job state %s: %s", self.path, e)
            return {}

    def clear(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
