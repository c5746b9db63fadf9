"""Tracker configuration via environment variables."""

from datetime import timedelta

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Status endpoint of the generation service
    status_base_url: str = "http://localhost:3000/api/processing"
    status_request_timeout_seconds: float = 10.0

    # Polling
    poll_interval_seconds: float = 2.0

    # Stale job sweep
    stale_job_threshold_minutes: int = 30
    sweep_interval_seconds: float = 60.0

    # Persistence (disabled -> jobs live only as long as the process)
    persistence_enabled: bool = False
    persistence_dir: str = ""  # empty -> <tmp>/generation_tracker
    persistence_name: str = "pixel-studio-generation"

    # Service
    log_level: str = "INFO"
    tracker_port: int = 8002

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def stale_job_threshold(self) -> timedelta:
        return timedelta(minutes=self.stale_job_threshold_minutes)


settings = Settings()
