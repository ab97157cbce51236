"""
Tests for the per-type generation strategies.
"""

import pytest
from unittest.mock import Mock
from services.queue.strategies import get_strategy
from services.queue.tasks import GenerationTask
from services.workflow.configs import VideoWorkflowConfig
from shared.exceptions import OutputRetrievalError
from shared.types import GenerationType, OutputFile, QueueStatus, UploadResult


def test_every_generation_type_has_a_strategy():
    """Audio, image, and video are all registered"""
    for generation_type in GenerationType:
        assert get_strategy(generation_type).generation_type == generation_type


def test_unknown_strategy():
    """Unregistered types are rejected"""
    with pytest.raises(ValueError):
        get_strategy("hologram")


def test_video_submission_uploads_local_inputs(tmp_path):
    """Local image and audio files are uploaded and referenced by their stored names"""
    image = tmp_path / "still.png"
    image.write_bytes(b"\x89PNG")
    audio = tmp_path / "theme.mp3"
    audio.write_bytes(b"ID3")

    client = Mock()
    client.upload_file.side_effect = [UploadResult(name="still (1).png"), UploadResult(name="theme.mp3")]
    client.submit_workflow.return_value = "p-9"
    task = GenerationTask.create(
        "video",
        VideoWorkflowConfig(image_file_path=str(image), audio_file_path=str(audio), seed=5),
    )

    assert get_strategy("video").submit(task, client) == "p-9"

    client.upload_file.assert_any_call(b"\x89PNG", "still.png")
    wire = client.submit_workflow.call_args[0][0]
    assert wire["2"]["inputs"]["image"] == "still (1).png"
    assert wire["9"]["inputs"]["audio"] == "theme.mp3"


def test_video_submission_keeps_engine_side_names():
    """Paths that are not local files are passed through without upload"""
    client = Mock()
    client.submit_workflow.return_value = "p-9"
    task = GenerationTask.create("video", VideoWorkflowConfig(image_file_path="already_uploaded.png", seed=5))

    get_strategy("video").submit(task, client)

    client.upload_file.assert_not_called()
    assert client.submit_workflow.call_args[0][0]["2"]["inputs"]["image"] == "already_uploaded.png"


def test_video_prefers_video_files():
    """A preview image listed first does not shadow the video"""
    files = [OutputFile(filename="preview.png"), OutputFile(filename="clip.mp4")]
    assert get_strategy("video").select_output(files).filename == "clip.mp4"


def test_completed_without_outputs_raises_retrieval_error():
    """A success entry with no files is a retryable retrieval failure"""
    client = Mock()
    client.get_history.return_value = {"outputs": {}, "status": {"status_str": "success"}}
    task = GenerationTask.create("audio")
    task.mark_submitted("p-3")

    with pytest.raises(OutputRetrievalError) as exc_info:
        get_strategy("audio").check_completion(task, client, QueueStatus(), Mock())
    assert exc_info.value.is_retryable


def test_check_reports_queue_position():
    """Queue membership is resolved before history is consulted"""
    client = Mock()
    task = GenerationTask.create("image")
    task.mark_submitted("p-3")

    result = get_strategy("image").check_completion(task, client, QueueStatus(pending=["a", "b", "p-3"]), Mock())

    assert result.queue_position == 3
    client.get_history.assert_not_called()
