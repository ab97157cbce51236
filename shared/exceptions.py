"""Structured exception hierarchy for workflow construction and generation tasks."""

from typing import Optional, Dict, Any
from pydantic import BaseModel


class TaskError(BaseModel):
    """Structured error describing a failed engine interaction"""
    error_type: str
    error_message: str
    http_status_code: Optional[int] = None
    retry_after_seconds: Optional[int] = None
    is_retryable: bool = False
    context: Dict[str, Any] = {}

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class GenerationError(Exception):
    """Base exception for generation errors"""

    def __init__(self, message: str, task_id: str = "", **context):
        self.message = message
        self.task_id = task_id
        self.context = context
        super().__init__(message)


class WorkflowValidationError(GenerationError):
    pass


class UnknownNodeTypeError(WorkflowValidationError):
    pass


class LinkTypeMismatchError(WorkflowValidationError):
    pass


class EngineError(GenerationError):
    """Failure talking to the remote engine; carries a TaskError"""

    def __init__(self, message: str, error: Optional[TaskError] = None, task_id: str = "", **context):
        super().__init__(message, task_id, **context)
        self.error = error or TaskError(error_type=type(self).__name__, error_message=message)

    @property
    def is_retryable(self) -> bool:
        return self.error.is_retryable


class EngineSubmissionError(EngineError):
    pass


class EngineUnavailableError(EngineError):
    pass


class OutputRetrievalError(EngineError):
    pass


class TaskCheckTimeoutError(GenerationError):
    pass


class InvalidTransitionError(GenerationError):
    pass
