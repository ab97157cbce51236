"""
Tests for the HTTP API routes.

Routes run against a real queue service backed by a mocked engine client.
"""

import pytest
from unittest.mock import Mock
from fastapi.testclient import TestClient
from services.api.main import create_app
from services.queue.queue_service import GenerationQueueService
from shared.exceptions import EngineUnavailableError
from shared.settings import EngineSettings, QueueSettings
from shared.types import QueueStatus


@pytest.fixture
def engine():
    engine = Mock()
    engine.settings = EngineSettings(base_url="http://engine:8188")
    engine.submit_workflow.return_value = "p-1"
    engine.get_queue_status.return_value = QueueStatus(pending=["p-1"])
    engine.get_history.return_value = None
    engine.cancel_job.return_value = True
    return engine


@pytest.fixture
def service(engine, tmp_path):
    service = GenerationQueueService(engine, QueueSettings(output_dir=str(tmp_path)))
    yield service
    service.close()


@pytest.fixture
def api(service):
    return TestClient(create_app(service))


def test_health(api):
    """Health endpoint responds"""
    response = api.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_correlation_id_echoed(api):
    """The correlation id header is returned, generated when absent"""
    response = api.get("/health", headers={"X-Correlation-ID": "abc-123"})
    assert response.headers["X-Correlation-ID"] == "abc-123"
    assert api.get("/health").headers["X-Correlation-ID"]


def test_create_task(api, engine):
    """Posting a config queues a task on the engine"""
    response = api.post("/tasks/image", json={
        "name": "Fox",
        "config": {"positive_prompt": "a red fox", "seed": 3},
        "notes": "cover art",
    })

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "QUEUED"
    assert body["type"] == "image"
    assert body["name"] == "Fox"
    assert body["prompt_id"] == "p-1"
    assert body["positive_prompt"] == "a red fox"
    assert body["config"]["seed"] == 3
    engine.submit_workflow.assert_called_once()


def test_create_task_invalid_config(api, engine):
    """Invalid parameters are rejected before anything is submitted"""
    response = api.post("/tasks/audio", json={"config": {"duration": -1}})
    assert response.status_code == 400
    assert "duration" in response.json()["detail"]
    engine.submit_workflow.assert_not_called()


def test_create_task_unknown_type(api):
    """Only audio, image, and video are routable"""
    response = api.post("/tasks/hologram", json={"config": {}})
    assert response.status_code == 422


def test_create_task_engine_rejection_reports_failed_task(api, engine):
    """A rejected submission still creates the task, in FAILED state"""
    engine.submit_workflow.side_effect = EngineUnavailableError("Network error: refused")
    response = api.post("/tasks/audio", json={"config": {"seed": 1}})

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "FAILED"
    assert body["error_message"] == "Audio generation failed: Network error: refused"


def test_list_and_get_tasks(api):
    """Tasks can be listed and fetched by id"""
    created = api.post("/tasks/image", json={"config": {"seed": 1}}).json()

    listing = api.get("/tasks").json()
    assert listing["total"] == 1
    assert listing["tasks"][0]["id"] == created["id"]

    fetched = api.get(f"/tasks/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["id"] == created["id"]


def test_get_missing_task(api):
    """Unknown task ids are 404"""
    assert api.get("/tasks/does-not-exist").status_code == 404


def test_cancel_task(api):
    """Cancelling twice yields 200 then 409"""
    task_id = api.post("/tasks/image", json={"config": {"seed": 1}}).json()["id"]

    first = api.post(f"/tasks/{task_id}/cancel")
    assert first.status_code == 200
    assert first.json() == {"task_id": task_id, "status": "CANCELLED", "message": "Cancelled by user"}

    second = api.post(f"/tasks/{task_id}/cancel")
    assert second.status_code == 409
    assert api.post("/tasks/missing/cancel").status_code == 404


def test_clear_completed(api):
    """Only finished tasks are removed"""
    keep = api.post("/tasks/image", json={"config": {"seed": 1}}).json()["id"]
    drop = api.post("/tasks/image", json={"config": {"seed": 2}}).json()["id"]
    api.post(f"/tasks/{drop}/cancel")

    response = api.delete("/tasks/completed")
    assert response.json() == {"removed": 1}
    assert api.get(f"/tasks/{keep}").status_code == 200
    assert api.get(f"/tasks/{drop}").status_code == 404


def test_engine_status(api, engine):
    """Engine status reports availability and queue contents"""
    engine.is_available.return_value = True
    body = api.get("/engine/status").json()
    assert body == {"available": True, "base_url": "http://engine:8188", "running": [], "pending": ["p-1"]}

    engine.is_available.return_value = False
    assert api.get("/engine/status").json()["available"] is False


def test_engine_models(api, engine):
    """Model listing is forwarded to the engine client"""
    engine.get_available_models.return_value = ["sd15.safetensors"]
    response = api.get("/engine/models", params={"node_type": "CheckpointLoaderSimple"})

    assert response.json()["models"] == ["sd15.safetensors"]
    engine.get_available_models.assert_called_once_with("CheckpointLoaderSimple", "ckpt_name")


def test_lifespan_starts_and_closes_service():
    """The app starts polling on startup and closes the service on shutdown"""
    queue_service = Mock()
    with TestClient(create_app(queue_service)) as api:
        assert api.get("/health").status_code == 200
        queue_service.start.assert_called_once()
    queue_service.close.assert_called_once()
