"""
Tests for the audio, image, and video workflow factories.

Checks node wiring, derived widget values, and config validation for each
generation pipeline.
"""

import pytest
from services.workflow import audio_factory, image_factory, video_factory
from services.workflow.configs import (
    AudioWorkflowConfig,
    ImageWorkflowConfig,
    VideoWorkflowConfig,
    build_config,
)
from shared.constants import MAX_SEED, PLACEHOLDER_IMAGE_NAME
from shared.exceptions import WorkflowValidationError
from shared.types import GenerationType


def _inputs(wire, node_type):
    return next(entry["inputs"] for entry in wire.values() if entry["class_type"] == node_type)


def test_audio_workflow_end_to_end():
    """Audio tags and duration land on the encoder and latent nodes"""
    config = AudioWorkflowConfig(tags="pop, female voice", duration=180)
    wire = audio_factory.create_workflow(config).to_wire()

    class_types = {entry["class_type"] for entry in wire.values()}
    assert {
        "CheckpointLoaderSimple",
        "EmptyAceStepLatentAudio",
        "TextEncodeAceStepAudio",
        "KSampler",
        "VAEDecodeAudio",
    } <= class_types
    assert _inputs(wire, "TextEncodeAceStepAudio")["tags"] == "pop, female voice"
    assert _inputs(wire, "EmptyAceStepLatentAudio")["seconds"] == 180.0


def test_audio_sampler_wiring():
    """The sampler takes the CFG-wrapped model, encoded and zeroed conditioning, and the audio latent"""
    wire = audio_factory.create_workflow(AudioWorkflowConfig(seed=7)).to_wire()
    sampler = wire[str(audio_factory.SAMPLER_NODE_ID)]["inputs"]

    assert sampler["model"] == [str(audio_factory.APPLY_CFG_NODE_ID), 0]
    assert sampler["positive"] == [str(audio_factory.TEXT_ENCODE_NODE_ID), 0]
    assert sampler["negative"] == [str(audio_factory.ZERO_OUT_NODE_ID), 0]
    assert sampler["latent_image"] == [str(audio_factory.LATENT_NODE_ID), 0]
    assert sampler["seed"] == 7
    assert sampler["control_after_generate"] == "fixed"


def test_audio_save_node_follows_output_format():
    """mp3 uses SaveAudioMP3 with quality; other formats use SaveAudio"""
    mp3 = audio_factory.create_workflow(AudioWorkflowConfig(output_format="mp3", audio_quality="320k"))
    flac = audio_factory.create_workflow(AudioWorkflowConfig(output_format="flac"))

    assert mp3.get_node(audio_factory.SAVE_NODE_ID).type == "SaveAudioMP3"
    assert mp3.get_node(audio_factory.SAVE_NODE_ID).widgets_values[1] == "320k"
    assert flac.get_node(audio_factory.SAVE_NODE_ID).type == "SaveAudio"


def test_audio_negative_duration_rejected():
    """Durations must be positive"""
    with pytest.raises(WorkflowValidationError, match="duration"):
        build_config(GenerationType.AUDIO, {"duration": -5})


def test_factory_rejects_wrong_config_type():
    """Each factory only accepts its own config variant"""
    with pytest.raises(WorkflowValidationError, match="Expected AudioWorkflowConfig"):
        audio_factory.create_workflow(ImageWorkflowConfig())


@pytest.mark.parametrize("seed", [-1, -2, -1000])
def test_random_seed_when_negative(seed):
    """Any negative seed resolves to a random seed with randomize control"""
    wire = image_factory.create_workflow(ImageWorkflowConfig(seed=seed)).to_wire()
    sampler = wire[str(image_factory.SAMPLER_NODE_ID)]["inputs"]
    assert 1 <= sampler["seed"] <= MAX_SEED
    assert sampler["control_after_generate"] == "randomize"


def test_fixed_seed_is_deterministic():
    """Two builds with a fixed seed differ only in graph id"""
    config = ImageWorkflowConfig(seed=1234, positive_prompt="a lighthouse at dusk")
    first = image_factory.create_workflow(config)
    second = image_factory.create_workflow(config)

    assert first.id != second.id
    assert first.to_wire() == second.to_wire()
    assert first.is_equivalent(second)


def test_image_workflow_wiring():
    """Prompts feed the sampler through their own encoders"""
    config = ImageWorkflowConfig(positive_prompt="sunset", negative_prompt="noise", width=768, height=512)
    wire = image_factory.create_workflow(config).to_wire()

    assert wire[str(image_factory.POSITIVE_NODE_ID)]["inputs"]["text"] == "sunset"
    assert wire[str(image_factory.NEGATIVE_NODE_ID)]["inputs"]["text"] == "noise"
    assert wire[str(image_factory.LATENT_NODE_ID)]["inputs"]["width"] == 768
    assert len(image_factory.create_workflow(config).find_nodes("CLIPTextEncode")) == 2
    sampler = wire[str(image_factory.SAMPLER_NODE_ID)]["inputs"]
    assert sampler["positive"] == [str(image_factory.POSITIVE_NODE_ID), 0]
    assert sampler["negative"] == [str(image_factory.NEGATIVE_NODE_ID), 0]


def test_image_model_set_checkpoint():
    """The model set supplies the checkpoint unless one is given"""
    default = ImageWorkflowConfig(model_set="SD_1_5")
    override = ImageWorkflowConfig(model_set="SD_1_5", checkpoint_name="custom.safetensors")

    assert default.resolved_checkpoint == "v1-5-pruned-emaonly.safetensors"
    assert override.resolved_checkpoint == "custom.safetensors"


def test_image_model_set_defaults():
    """Recommended sampler settings are applied on request"""
    config = ImageWorkflowConfig(model_set="SDXL_TURBO").with_model_set_defaults()
    assert config.steps == 4
    assert config.cfg_scale == 1.0


def test_image_dimension_must_be_multiple_of_eight():
    """Latent dimensions are validated"""
    with pytest.raises(WorkflowValidationError, match="multiple of 8"):
        build_config("image", {"width": 500})


@pytest.mark.parametrize("duration,fps,expected", [(5, 24, 120), (2.5, 60, 150)])
def test_video_frame_count(duration, fps, expected):
    """video_frames is duration * fps rounded to an integer"""
    config = VideoWorkflowConfig(duration_seconds=duration, fps=fps)
    wire = video_factory.create_workflow(config).to_wire()
    assert wire[str(video_factory.CONDITIONING_NODE_ID)]["inputs"]["video_frames"] == expected


def test_video_motion_bucket_range():
    """Motion intensity maps onto buckets 127..254"""
    def bucket(intensity):
        config = VideoWorkflowConfig(motion_intensity=intensity)
        wire = video_factory.create_workflow(config).to_wire()
        return wire[str(video_factory.CONDITIONING_NODE_ID)]["inputs"]["motion_bucket_id"]

    assert bucket(0.0) == 127
    assert bucket(1.0) == 254
    assert 127 < bucket(0.5) < 254


def test_video_placeholder_image():
    """Without an input image the loader uses the placeholder asset"""
    wire = video_factory.create_workflow(VideoWorkflowConfig()).to_wire()
    assert wire[str(video_factory.LOAD_IMAGE_NODE_ID)]["inputs"]["image"] == PLACEHOLDER_IMAGE_NAME


def test_video_image_basename():
    """Paths reduce to their file name"""
    assert video_factory.image_input_name("/tmp/uploads/cat.png") == "cat.png"
    assert video_factory.image_input_name("   ") == PLACEHOLDER_IMAGE_NAME


def test_video_sampler_takes_conditioning_slots():
    """positive, negative, and latent come from the conditioning node's three outputs"""
    wire = video_factory.create_workflow(VideoWorkflowConfig()).to_wire()
    sampler = wire[str(video_factory.SAMPLER_NODE_ID)]["inputs"]
    cond = str(video_factory.CONDITIONING_NODE_ID)

    assert sampler["positive"] == [cond, video_factory.POSITIVE_SLOT]
    assert sampler["negative"] == [cond, video_factory.NEGATIVE_SLOT]
    assert sampler["latent_image"] == [cond, video_factory.LATENT_SLOT]
    assert sampler["model"] == [str(video_factory.CFG_GUIDANCE_NODE_ID), 0]


def test_video_audio_track_optional():
    """An audio path adds a LoadAudio node feeding CreateVideo"""
    silent = video_factory.create_workflow(VideoWorkflowConfig()).to_wire()
    scored = video_factory.create_workflow(VideoWorkflowConfig(audio_file_path="/music/theme.mp3")).to_wire()

    assert str(video_factory.LOAD_AUDIO_NODE_ID) not in silent
    assert scored[str(video_factory.LOAD_AUDIO_NODE_ID)]["inputs"]["audio"] == "theme.mp3"
    assert scored[str(video_factory.CREATE_VIDEO_NODE_ID)]["inputs"]["audio"] == [
        str(video_factory.LOAD_AUDIO_NODE_ID), 0
    ]


def test_video_requires_at_least_one_frame():
    """A duration too short for a single frame is rejected"""
    with pytest.raises(WorkflowValidationError, match="at least one frame"):
        build_config(GenerationType.VIDEO, {"duration_seconds": 0.01, "fps": 10})


def test_build_config_rejects_unknown_fields():
    """Unexpected parameters are not silently ignored"""
    with pytest.raises(WorkflowValidationError):
        build_config("audio", {"tempo": 120})


def test_build_config_rejects_unknown_type():
    """Only audio, image, and video are supported"""
    with pytest.raises(WorkflowValidationError, match="Unknown generation type"):
        build_config("hologram", {})
