"""Environment-driven settings for the engine client and queue service."""

import os
from typing import Optional
from pydantic import BaseModel, Field
from shared.constants import (
    DEFAULT_ENGINE_URL,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    MIN_REQUEST_TIMEOUT_SECONDS,
    MAX_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    POLL_START_DELAY_SECONDS,
    DEFAULT_TASK_CHECK_TIMEOUT_SECONDS,
    DEFAULT_STALE_TASK_TIMEOUT_SECONDS,
    DEFAULT_WORKER_THREADS,
    MAX_POLL_FAILURES,
    MAX_OUTPUT_RETRIEVAL_ATTEMPTS,
    DEFAULT_OUTPUT_DIR,
)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class EngineSettings(BaseModel):
    """Connection settings for the media engine"""
    base_url: str = DEFAULT_ENGINE_URL
    timeout_seconds: float = Field(
        default=DEFAULT_REQUEST_TIMEOUT_SECONDS,
        ge=MIN_REQUEST_TIMEOUT_SECONDS,
        le=MAX_REQUEST_TIMEOUT_SECONDS,
    )
    use_api_prefix: bool = False
    client_id: Optional[str] = None

    class Config:
        extra = "forbid"

    @property
    def api_root(self) -> str:
        root = self.base_url.rstrip("/")
        return f"{root}/api" if self.use_api_prefix else root

    @classmethod
    def from_env(cls) -> "EngineSettings":
        return cls(
            base_url=os.getenv("COMFYUI_URL", DEFAULT_ENGINE_URL),
            timeout_seconds=float(os.getenv("COMFYUI_TIMEOUT_SECONDS", DEFAULT_REQUEST_TIMEOUT_SECONDS)),
            use_api_prefix=_env_bool("COMFYUI_USE_API_PREFIX", False),
            client_id=os.getenv("COMFYUI_CLIENT_ID") or None,
        )


class QueueSettings(BaseModel):
    """Polling, timeout, and retry budgets for the generation queue"""
    poll_interval_seconds: float = Field(default=DEFAULT_POLL_INTERVAL_SECONDS, gt=0)
    start_delay_seconds: float = Field(default=POLL_START_DELAY_SECONDS, ge=0)
    check_timeout_seconds: float = Field(default=DEFAULT_TASK_CHECK_TIMEOUT_SECONDS, gt=0)
    stale_task_timeout_seconds: float = Field(default=DEFAULT_STALE_TASK_TIMEOUT_SECONDS, ge=0)
    max_poll_failures: int = Field(default=MAX_POLL_FAILURES, ge=1)
    max_output_retrieval_attempts: int = Field(default=MAX_OUTPUT_RETRIEVAL_ATTEMPTS, ge=1)
    worker_threads: int = Field(default=DEFAULT_WORKER_THREADS, ge=1, le=64)
    output_dir: str = DEFAULT_OUTPUT_DIR

    class Config:
        extra = "forbid"

    @classmethod
    def from_env(cls) -> "QueueSettings":
        return cls(
            poll_interval_seconds=float(os.getenv("GENERATION_POLL_INTERVAL_SECONDS", DEFAULT_POLL_INTERVAL_SECONDS)),
            start_delay_seconds=float(os.getenv("GENERATION_POLL_START_DELAY_SECONDS", POLL_START_DELAY_SECONDS)),
            check_timeout_seconds=float(os.getenv("GENERATION_CHECK_TIMEOUT_SECONDS", DEFAULT_TASK_CHECK_TIMEOUT_SECONDS)),
            stale_task_timeout_seconds=float(os.getenv("GENERATION_STALE_TIMEOUT_SECONDS", DEFAULT_STALE_TASK_TIMEOUT_SECONDS)),
            max_poll_failures=int(os.getenv("GENERATION_MAX_POLL_FAILURES", MAX_POLL_FAILURES)),
            max_output_retrieval_attempts=int(os.getenv("GENERATION_MAX_RETRIEVAL_ATTEMPTS", MAX_OUTPUT_RETRIEVAL_ATTEMPTS)),
            worker_threads=int(os.getenv("GENERATION_WORKER_THREADS", DEFAULT_WORKER_THREADS)),
            output_dir=os.getenv("GENERATION_OUTPUT_DIR", DEFAULT_OUTPUT_DIR),
        )
