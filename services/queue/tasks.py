"""Generation task record and its status transitions."""

from datetime import datetime
from typing import Optional, Union
from pydantic import BaseModel, Field, model_validator
from services.workflow.configs import (
    CONFIG_TYPES,
    AudioWorkflowConfig,
    ImageWorkflowConfig,
    VideoWorkflowConfig,
)
from shared.constants import CANCELLED_BY_USER_MESSAGE
from shared.exceptions import InvalidTransitionError
from shared.types import GenerationStatus, GenerationType, is_transition_allowed
from shared.utils import generate_task_id, utc_now


class GenerationTask(BaseModel):
    id: str = Field(default_factory=generate_task_id)
    name: str = ""
    type: GenerationType
    config: Union[AudioWorkflowConfig, ImageWorkflowConfig, VideoWorkflowConfig]
    status: GenerationStatus = GenerationStatus.PENDING
    prompt_id: Optional[str] = None
    queue_position: Optional[int] = None
    generated_file_path: Optional[str] = None
    error_message: Optional[str] = None
    positive_prompt: str = ""
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @model_validator(mode='after')
    def validate_config_type(self) -> "GenerationTask":
        expected = CONFIG_TYPES[self.type]
        if not isinstance(self.config, expected):
            raise ValueError(f"{self.type.value} task requires {expected.__name__}, got {type(self.config).__name__}")
        return self

    @classmethod
    def create(cls, generation_type: Union[GenerationType, str], config=None, name: str = "", notes: Optional[str] = None) -> "GenerationTask":
        generation_type = GenerationType(generation_type)
        config = config if config is not None else CONFIG_TYPES[generation_type]()
        return cls(
            type=generation_type,
            config=config,
            name=name or f"{generation_type.value.capitalize()} generation",
            positive_prompt=config.describe(),
            notes=notes,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def snapshot(self) -> "GenerationTask":
        return self.model_copy(deep=True)

    def _transition(self, target: GenerationStatus) -> None:
        if not is_transition_allowed(self.status, target):
            raise InvalidTransitionError(
                f"Cannot move task from {self.status.value} to {target.value}",
                task_id=self.id,
            )
        self.status = target

    def mark_submitted(self, prompt_id: str) -> None:
        if self.status != GenerationStatus.PENDING:
            raise InvalidTransitionError(f"Task already submitted ({self.status.value})", task_id=self.id)
        self._transition(GenerationStatus.QUEUED)
        self.prompt_id = prompt_id
        self.submitted_at = utc_now()

    def mark_waiting(self, status: GenerationStatus, queue_position: Optional[int]) -> bool:
        """Applies a QUEUED/PROCESSING observation; returns True if anything changed"""
        if status not in (GenerationStatus.QUEUED, GenerationStatus.PROCESSING):
            raise InvalidTransitionError(f"{status.value} is not a waiting status", task_id=self.id)
        if status == self.status and queue_position == self.queue_position:
            return False
        self._transition(status)
        self.queue_position = queue_position
        return True

    def mark_completed(self, generated_file_path: str) -> None:
        self._transition(GenerationStatus.COMPLETED)
        self.generated_file_path = generated_file_path
        self.error_message = None
        self.queue_position = None
        self.completed_at = utc_now()

    def mark_failed(self, error_message: str) -> None:
        self._transition(GenerationStatus.FAILED)
        self.error_message = error_message or "Generation failed"
        self.generated_file_path = None
        self.queue_position = None
        self.completed_at = utc_now()

    def mark_cancelled(self) -> None:
        self._transition(GenerationStatus.CANCELLED)
        self.error_message = CANCELLED_BY_USER_MESSAGE
        self.generated_file_path = None
        self.queue_position = None
        self.completed_at = utc_now()
