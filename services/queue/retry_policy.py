"""Retry decisions and backoff delays for failed task checks."""

import logging
from typing import Optional, Tuple
from shared.exceptions import EngineError, GenerationError, TaskError
from shared.constants import (
    MAX_POLL_FAILURES,
    INITIAL_RETRY_DELAY_SECONDS,
    MAX_RETRY_DELAY_SECONDS,
)


class RetryPolicy:
    """Decides when a failed check is retried and how long to back off"""

    def __init__(
        self,
        max_attempts: int = MAX_POLL_FAILURES,
        initial_delay_seconds: float = INITIAL_RETRY_DELAY_SECONDS,
        max_delay_seconds: float = MAX_RETRY_DELAY_SECONDS,
        retry_engine_errors: bool = False,
    ):
        self.max_attempts = max_attempts
        self.initial_delay_seconds = initial_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        # Polling treats every engine or transport failure as transient until the budget runs out
        self.retry_engine_errors = retry_engine_errors

    def should_retry(self, task_id: str, attempt: int, error: Exception) -> Tuple[bool, Optional[float]]:
        """attempt is the number of consecutive failures so far, including this one"""
        task_error = self.to_task_error(error)

        if not (task_error.is_retryable or self.is_budgeted(error)):
            logging.info(
                "Task check error is not retryable",
                extra={"task_id": task_id, "error_type": task_error.error_type}
            )
            return False, None

        if attempt >= self.max_attempts:
            logging.warning(
                "Maximum retry attempts reached",
                extra={
                    "task_id": task_id,
                    "retry_count": attempt,
                    "max_attempts": self.max_attempts
                }
            )
            return False, None

        delay = self._calculate_backoff_delay(attempt - 1, task_error)

        logging.info(
            "Task check will be retried",
            extra={
                "task_id": task_id,
                "retry_attempt": attempt,
                "delay_seconds": delay,
                "error_type": task_error.error_type
            }
        )
        return True, delay

    def is_budgeted(self, error: Exception) -> bool:
        return self.retry_engine_errors and isinstance(error, EngineError)

    def to_task_error(self, error: Exception) -> TaskError:
        if isinstance(error, EngineError):
            return error.error
        if isinstance(error, GenerationError):
            # Check timeouts and other local failures may clear on the next cycle
            return TaskError(error_type=type(error).__name__, error_message=error.message, is_retryable=True)
        return TaskError(
            error_type="UNEXPECTED_ERROR",
            error_message=f"{type(error).__name__}: {error}",
            is_retryable=True,
        )

    def _calculate_backoff_delay(self, retry_count: int, task_error: TaskError) -> float:
        """Exponential backoff with Retry-After support"""
        if task_error.retry_after_seconds:
            delay = min(task_error.retry_after_seconds, self.max_delay_seconds)
            logging.debug(
                f"Using Retry-After delay: {delay}s",
                extra={"retry_after": task_error.retry_after_seconds}
            )
        else:
            # Exponential backoff: 1s, 2s, 4s, 8s, ...
            delay = min(
                self.initial_delay_seconds * (2 ** max(retry_count, 0)),
                self.max_delay_seconds
            )
            logging.debug(
                f"Using exponential backoff delay: {delay}s",
                extra={"retry_count": retry_count}
            )
        return delay
