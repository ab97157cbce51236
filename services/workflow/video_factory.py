"""Stable Video Diffusion image-to-video workflow factory."""

import os
from typing import Optional
from services.workflow.configs import VideoWorkflowConfig
from services.workflow.graph import WorkflowGraph
from shared.constants import PLACEHOLDER_IMAGE_NAME
from shared.exceptions import WorkflowValidationError
from shared.utils import resolve_seed

CHECKPOINT_NODE_ID = 1
LOAD_IMAGE_NODE_ID = 2
CONDITIONING_NODE_ID = 3
CFG_GUIDANCE_NODE_ID = 4
SAMPLER_NODE_ID = 5
DECODE_NODE_ID = 6
CREATE_VIDEO_NODE_ID = 7
SAVE_NODE_ID = 8
LOAD_AUDIO_NODE_ID = 9

# SVD_img2vid_Conditioning output slots
POSITIVE_SLOT = 0
NEGATIVE_SLOT = 1
LATENT_SLOT = 2


def image_input_name(image_file_path: Optional[str] = None) -> str:
    """LoadImage widget value: the file's basename, or the placeholder asset"""
    if image_file_path and image_file_path.strip():
        name = os.path.basename(image_file_path.replace("\\", "/").rstrip("/"))
        if name:
            return name
    return PLACEHOLDER_IMAGE_NAME


def create_workflow(config: VideoWorkflowConfig) -> WorkflowGraph:
    if not isinstance(config, VideoWorkflowConfig):
        raise WorkflowValidationError(f"Expected VideoWorkflowConfig, got {type(config).__name__}")

    graph = WorkflowGraph()
    seed, seed_control = resolve_seed(config.seed)

    graph.add_node("ImageOnlyCheckpointLoader", 60, 120, node_id=CHECKPOINT_NODE_ID,
                   widgets_values=[config.checkpoint_name])
    graph.add_node("LoadImage", 60, 300, node_id=LOAD_IMAGE_NODE_ID,
                   widgets_values=[image_input_name(config.image_file_path)])
    graph.add_node("SVD_img2vid_Conditioning", 480, 260, node_id=CONDITIONING_NODE_ID, widgets_values=[
        config.width,
        config.height,
        config.frame_count,
        config.motion_bucket_id,
        config.fps,
        config.augmentation_level,
    ])
    graph.add_node("VideoLinearCFGGuidance", 480, 80, node_id=CFG_GUIDANCE_NODE_ID,
                   widgets_values=[config.min_cfg])
    graph.add_node("KSampler", 880, 160, node_id=SAMPLER_NODE_ID, widgets_values=[
        seed,
        seed_control,
        config.steps,
        config.cfg_scale,
        config.sampler_name,
        config.scheduler,
        config.denoise,
    ])
    graph.add_node("VAEDecode", 1240, 160, node_id=DECODE_NODE_ID)
    graph.add_node("CreateVideo", 1480, 160, node_id=CREATE_VIDEO_NODE_ID,
                   widgets_values=[config.fps])
    graph.add_node("SaveVideo", 1760, 160, node_id=SAVE_NODE_ID, widgets_values=[
        config.output_filename,
        config.output_format,
        config.codec,
    ])

    graph.add_link(CHECKPOINT_NODE_ID, 0, CFG_GUIDANCE_NODE_ID, 0, "MODEL")
    graph.add_link(CHECKPOINT_NODE_ID, 1, CONDITIONING_NODE_ID, 0, "CLIP_VISION")
    graph.add_link(LOAD_IMAGE_NODE_ID, 0, CONDITIONING_NODE_ID, 1, "IMAGE")
    graph.add_link(CHECKPOINT_NODE_ID, 2, CONDITIONING_NODE_ID, 2, "VAE")
    graph.add_link(CFG_GUIDANCE_NODE_ID, 0, SAMPLER_NODE_ID, 0, "MODEL")
    graph.add_link(CONDITIONING_NODE_ID, POSITIVE_SLOT, SAMPLER_NODE_ID, 1, "CONDITIONING")
    graph.add_link(CONDITIONING_NODE_ID, NEGATIVE_SLOT, SAMPLER_NODE_ID, 2, "CONDITIONING")
    graph.add_link(CONDITIONING_NODE_ID, LATENT_SLOT, SAMPLER_NODE_ID, 3, "LATENT")
    graph.add_link(SAMPLER_NODE_ID, 0, DECODE_NODE_ID, 0, "LATENT")
    graph.add_link(CHECKPOINT_NODE_ID, 2, DECODE_NODE_ID, 1, "VAE")
    graph.add_link(DECODE_NODE_ID, 0, CREATE_VIDEO_NODE_ID, 0, "IMAGE")
    graph.add_link(CREATE_VIDEO_NODE_ID, 0, SAVE_NODE_ID, 0, "VIDEO")

    if config.audio_file_path:
        graph.add_node("LoadAudio", 1240, 360, node_id=LOAD_AUDIO_NODE_ID,
                       widgets_values=[os.path.basename(config.audio_file_path.replace("\\", "/"))])
        graph.add_link(LOAD_AUDIO_NODE_ID, 0, CREATE_VIDEO_NODE_ID, 1, "AUDIO")

    graph.validate_graph()
    return graph
