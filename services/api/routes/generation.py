"""Generation task and engine API routes."""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request, status
from services.api.domain.models import (
    CancelTaskResponse,
    ClearTasksResponse,
    CreateTaskRequest,
    EngineModelsResponse,
    EngineStatusResponse,
    TaskListResponse,
    TaskResponse,
)
from services.queue.queue_service import GenerationQueueService
from services.queue.tasks import GenerationTask
from services.workflow.configs import build_config
from shared.exceptions import EngineError, GenerationError, WorkflowValidationError
from shared.types import GenerationType


router = APIRouter()


def get_queue_service(request: Request) -> GenerationQueueService:
    return request.app.state.queue_service


# Handlers are sync so blocking engine calls run in the threadpool


@router.post("/tasks/{generation_type}", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    generation_type: GenerationType,
    request: CreateTaskRequest,
    service: GenerationQueueService = Depends(get_queue_service),
):
    try:
        config = build_config(generation_type, request.config)
        task = GenerationTask.create(generation_type, config, name=request.name or "", notes=request.notes)
        task_id = service.queue_task(task)
    except WorkflowValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except GenerationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)

    return TaskResponse.from_task(service.get_task(task_id))


@router.get("/tasks", response_model=TaskListResponse)
def list_tasks(service: GenerationQueueService = Depends(get_queue_service)):
    tasks = [TaskResponse.from_task(task) for task in service.get_all_tasks()]
    return TaskListResponse(tasks=tasks, total=len(tasks))


@router.delete("/tasks/completed", response_model=ClearTasksResponse)
def clear_completed_tasks(service: GenerationQueueService = Depends(get_queue_service)):
    return ClearTasksResponse(removed=service.clear_completed_tasks())


@router.get("/tasks/{task_id}", response_model=TaskResponse)
def get_task(task_id: str, service: GenerationQueueService = Depends(get_queue_service)):
    task = service.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND,
                            detail=f"Task {task_id} not found")
    return TaskResponse.from_task(task)


@router.post("/tasks/{task_id}/cancel", response_model=CancelTaskResponse)
def cancel_task(task_id: str, service: GenerationQueueService = Depends(get_queue_service)):
    task = service.get_task(task_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND,
                            detail=f"Task {task_id} not found")

    if not service.cancel_task(task_id):
        current = service.get_task(task_id) or task
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Task {task_id} is already {current.status.value} and cannot be cancelled"
        )

    cancelled = service.get_task(task_id)
    return CancelTaskResponse(task_id=task_id, status=cancelled.status, message=cancelled.error_message or "")


@router.get("/engine/status", response_model=EngineStatusResponse)
def engine_status(service: GenerationQueueService = Depends(get_queue_service)):
    client = service.client
    if not client.is_available():
        return EngineStatusResponse(available=False, base_url=client.settings.base_url)

    try:
        queue_status = client.get_queue_status()
    except EngineError as e:
        logging.warning("Engine queue unreadable", extra={"error": e.message})
        return EngineStatusResponse(available=False, base_url=client.settings.base_url)

    return EngineStatusResponse(
        available=True,
        base_url=client.settings.base_url,
        running=queue_status.running,
        pending=queue_status.pending,
    )


@router.get("/engine/models", response_model=EngineModelsResponse)
def engine_models(
    node_type: str = "CheckpointLoaderSimple",
    input_name: str = "ckpt_name",
    service: GenerationQueueService = Depends(get_queue_service),
):
    try:
        models = service.client.get_available_models(node_type, input_name)
    except EngineError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    return EngineModelsResponse(node_type=node_type, input_name=input_name, models=models)
