"""Shared types for the workflow, engine, queue, and API services."""

from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class GenerationType(str, Enum):
    AUDIO = "audio"
    IMAGE = "image"
    VIDEO = "video"


class GenerationStatus(str, Enum):
    PENDING = "PENDING"
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    GenerationStatus.COMPLETED,
    GenerationStatus.FAILED,
    GenerationStatus.CANCELLED,
})

ACTIVE_STATUSES = frozenset({
    GenerationStatus.PENDING,
    GenerationStatus.QUEUED,
    GenerationStatus.PROCESSING,
})

# Legal status changes; re-entering the same active state carries position updates
ALLOWED_TRANSITIONS = {
    GenerationStatus.PENDING: {
        GenerationStatus.QUEUED,
        GenerationStatus.FAILED,
        GenerationStatus.CANCELLED,
    },
    GenerationStatus.QUEUED: {
        GenerationStatus.QUEUED,
        GenerationStatus.PROCESSING,
        GenerationStatus.COMPLETED,
        GenerationStatus.FAILED,
        GenerationStatus.CANCELLED,
    },
    GenerationStatus.PROCESSING: {
        GenerationStatus.PROCESSING,
        GenerationStatus.COMPLETED,
        GenerationStatus.FAILED,
        GenerationStatus.CANCELLED,
    },
}


def is_transition_allowed(current: GenerationStatus, target: GenerationStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


class QueueStatus(BaseModel):
    """Snapshot of the engine's running and pending prompt ids"""
    running: List[str] = Field(default_factory=list)
    pending: List[str] = Field(default_factory=list)

    def position_of(self, prompt_id: str) -> Optional[int]:
        """0 while executing, 1-based while waiting, None when absent"""
        if prompt_id in self.running:
            return 0
        if prompt_id in self.pending:
            return self.pending.index(prompt_id) + 1
        return None


class OutputFile(BaseModel):
    """File descriptor reported in an engine history entry"""
    filename: str
    subfolder: str = ""
    type: str = "output"
    node_id: Optional[str] = None

    @property
    def extension(self) -> str:
        _, dot, ext = self.filename.rpartition(".")
        return f".{ext.lower()}" if dot and ext else ""


class UploadResult(BaseModel):
    name: str
    subfolder: str = ""
    type: str = "input"
