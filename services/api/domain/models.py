"""API request/response models."""

from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from services.queue.tasks import GenerationTask
from shared.types import GenerationStatus, GenerationType


class CreateTaskRequest(BaseModel):
    """Request body for queueing a generation; config keys follow the type's workflow config"""
    name: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None


class TaskResponse(BaseModel):
    id: str
    name: str
    type: GenerationType
    status: GenerationStatus
    prompt_id: Optional[str] = None
    queue_position: Optional[int] = None
    generated_file_path: Optional[str] = None
    error_message: Optional[str] = None
    positive_prompt: str = ""
    notes: Optional[str] = None
    config: Dict[str, Any]
    created_at: datetime
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_task(cls, task: GenerationTask) -> "TaskResponse":
        data = task.model_dump(mode="json")
        return cls(**data)


class TaskListResponse(BaseModel):
    tasks: List[TaskResponse]
    total: int


class ClearTasksResponse(BaseModel):
    removed: int


class CancelTaskResponse(BaseModel):
    task_id: str
    status: GenerationStatus
    message: str


class EngineStatusResponse(BaseModel):
    available: bool
    base_url: str
    running: List[str] = []
    pending: List[str] = []


class EngineModelsResponse(BaseModel):
    node_type: str
    input_name: str
    models: List[str]
