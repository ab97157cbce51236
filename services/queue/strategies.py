"""Per-type submission and completion-check strategies for generation tasks."""

import logging
import os
from typing import Callable, Dict, List, Optional, Tuple, Type
from pydantic import BaseModel
from services.engine.client import ComfyUIClient, extract_output_files, history_error
from services.queue.storage import OutputStore
from services.queue.tasks import GenerationTask
from services.workflow import audio_factory, image_factory, video_factory
from services.workflow.configs import VideoWorkflowConfig, WorkflowConfig
from services.workflow.graph import WorkflowGraph
from shared.exceptions import OutputRetrievalError, TaskError
from shared.types import GenerationStatus, GenerationType, OutputFile, QueueStatus


class CheckResult(BaseModel):
    """Observation produced by one completion check"""
    status: GenerationStatus
    queue_position: Optional[int] = None
    generated_file_path: Optional[str] = None
    error_message: Optional[str] = None
    awaiting_output: bool = False


class GenerationStrategy:
    """Builds, submits, and tracks one kind of generation"""

    generation_type: GenerationType
    output_keys: Tuple[str, ...] = ()
    workflow_factory: Callable[[WorkflowConfig], WorkflowGraph]

    def build_workflow(self, config: WorkflowConfig) -> WorkflowGraph:
        return self.workflow_factory(config)

    def default_extension(self, config: WorkflowConfig) -> str:
        return f".{config.output_format}"

    def stage_inputs(self, config: WorkflowConfig, client: ComfyUIClient) -> WorkflowConfig:
        """Uploads local input files; returns the config that references the staged names"""
        return config

    def submit(self, task: GenerationTask, client: ComfyUIClient) -> str:
        # Build once before any network call so config and wiring errors fail fast
        graph = self.build_workflow(task.config)
        staged = self.stage_inputs(task.config, client)
        if staged is not task.config:
            graph = self.build_workflow(staged)

        logging.info(
            "Submitting workflow",
            extra={
                "task_id": task.id,
                "generation_type": self.generation_type.value,
                "graph_id": graph.id,
                "node_count": len(graph.nodes)
            }
        )
        return client.submit_workflow(graph.to_wire())

    def select_output(self, files: List[OutputFile]) -> OutputFile:
        return files[0]

    def check_completion(
        self,
        task: GenerationTask,
        client: ComfyUIClient,
        queue_status: QueueStatus,
        output_store: OutputStore,
    ) -> CheckResult:
        position = queue_status.position_of(task.prompt_id)
        if position == 0:
            return CheckResult(status=GenerationStatus.PROCESSING, queue_position=0)
        if position is not None:
            return CheckResult(status=GenerationStatus.QUEUED, queue_position=position)

        entry = client.get_history(task.prompt_id)
        if entry is None:
            # Left the queue but history not flushed yet
            return CheckResult(status=task.status, queue_position=task.queue_position, awaiting_output=True)

        engine_error = history_error(entry)
        if engine_error:
            return CheckResult(status=GenerationStatus.FAILED, error_message=engine_error)

        files = extract_output_files(entry, self.output_keys)
        if not files:
            error = TaskError(
                error_type="OUTPUT_MISSING",
                error_message=f"No {self.generation_type.value} output found for prompt {task.prompt_id}",
                is_retryable=True,
                context={"prompt_id": task.prompt_id, "output_keys": list(self.output_keys)}
            )
            raise OutputRetrievalError(error.error_message, error=error, task_id=task.id)

        output = self.select_output(files)
        data = client.download_output(output)
        path = output_store.save(
            data,
            subfolder=self.generation_type.value,
            prefix=self.generation_type.value,
            prompt_id=task.prompt_id,
            extension=output.extension or self.default_extension(task.config),
        )
        return CheckResult(status=GenerationStatus.COMPLETED, generated_file_path=path)


_strategy_registry: Dict[GenerationType, GenerationStrategy] = {}


def register_strategy(generation_type: GenerationType):
    def decorator(cls: Type[GenerationStrategy]):
        cls.generation_type = generation_type
        _strategy_registry[generation_type] = cls()
        return cls
    return decorator


def get_strategy(generation_type: GenerationType) -> GenerationStrategy:
    generation_type = GenerationType(generation_type)
    if generation_type not in _strategy_registry:
        raise ValueError(f"Unknown generation type: {generation_type}")
    return _strategy_registry[generation_type]


@register_strategy(GenerationType.AUDIO)
class AudioGenerationStrategy(GenerationStrategy):
    output_keys = ("audio",)
    workflow_factory = staticmethod(audio_factory.create_workflow)


@register_strategy(GenerationType.IMAGE)
class ImageGenerationStrategy(GenerationStrategy):
    output_keys = ("images",)
    workflow_factory = staticmethod(image_factory.create_workflow)


@register_strategy(GenerationType.VIDEO)
class VideoGenerationStrategy(GenerationStrategy):
    # Video save nodes report under "images" with an animated flag on some engine versions
    output_keys = ("videos", "gifs", "images")
    workflow_factory = staticmethod(video_factory.create_workflow)

    VIDEO_EXTENSIONS = (".mp4", ".webm", ".mov", ".mkv", ".gif", ".webp")

    def default_extension(self, config: VideoWorkflowConfig) -> str:
        return ".mp4"

    def select_output(self, files: List[OutputFile]) -> OutputFile:
        for output in files:
            if output.extension in self.VIDEO_EXTENSIONS:
                return output
        return files[0]

    def stage_inputs(self, config: VideoWorkflowConfig, client: ComfyUIClient) -> VideoWorkflowConfig:
        updates = {}
        for field_name in ("image_file_path", "audio_file_path"):
            path = getattr(config, field_name)
            if not path:
                continue
            if not os.path.isfile(path):
                logging.info(
                    "Input is not a local file; using it as an engine-side name",
                    extra={"field": field_name, "path": path}
                )
                continue
            with open(path, "rb") as f:
                data = f.read()
            uploaded = client.upload_file(data, os.path.basename(path))
            updates[field_name] = uploaded.name

        if not updates:
            return config
        return config.model_copy(update=updates)
