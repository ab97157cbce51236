"""Node schema catalog for the engine node types the factories emit."""

from typing import Dict, List, Optional, Sequence, Tuple
from pydantic import BaseModel, Field
from shared.exceptions import UnknownNodeTypeError


class SlotSpec(BaseModel):
    """A typed input or output slot"""
    name: str
    type: str
    optional: bool = False

    class Config:
        extra = "forbid"
        frozen = True


class NodeSchema(BaseModel):
    """Linked inputs, outputs, and positional widget names of one node type"""
    node_type: str
    inputs: List[SlotSpec] = Field(default_factory=list)
    outputs: List[SlotSpec] = Field(default_factory=list)
    widgets: List[str] = Field(default_factory=list)

    class Config:
        extra = "forbid"
        frozen = True

    def input_index(self, name: str) -> Optional[int]:
        for index, slot in enumerate(self.inputs):
            if slot.name == name:
                return index
        return None

    @property
    def required_inputs(self) -> List[int]:
        return [i for i, slot in enumerate(self.inputs) if not slot.optional]


NODE_SCHEMAS: Dict[str, NodeSchema] = {}


def register_node_schema(
    node_type: str,
    inputs: Sequence[Tuple] = (),
    outputs: Sequence[Tuple[str, str]] = (),
    widgets: Sequence[str] = (),
) -> NodeSchema:
    """Registers a node type; input tuples are (name, type) or (name, type, optional)"""
    schema = NodeSchema(
        node_type=node_type,
        inputs=[SlotSpec(name=s[0], type=s[1], optional=len(s) > 2 and bool(s[2])) for s in inputs],
        outputs=[SlotSpec(name=name, type=slot_type) for name, slot_type in outputs],
        widgets=list(widgets),
    )
    NODE_SCHEMAS[node_type] = schema
    return schema


def get_node_schema(node_type: str) -> NodeSchema:
    if node_type not in NODE_SCHEMAS:
        raise UnknownNodeTypeError(f"Unknown node type: {node_type}", node_type=node_type)
    return NODE_SCHEMAS[node_type]


def list_node_types() -> List[str]:
    return list(NODE_SCHEMAS.keys())


# Shared loaders and samplers
register_node_schema(
    "CheckpointLoaderSimple",
    outputs=[("MODEL", "MODEL"), ("CLIP", "CLIP"), ("VAE", "VAE")],
    widgets=["ckpt_name"],
)
register_node_schema(
    "KSampler",
    inputs=[
        ("model", "MODEL"),
        ("positive", "CONDITIONING"),
        ("negative", "CONDITIONING"),
        ("latent_image", "LATENT"),
    ],
    outputs=[("LATENT", "LATENT")],
    widgets=["seed", "control_after_generate", "steps", "cfg", "sampler_name", "scheduler", "denoise"],
)

# Audio (ACE-Step)
register_node_schema(
    "EmptyAceStepLatentAudio",
    outputs=[("LATENT", "LATENT")],
    widgets=["seconds", "batch_size"],
)
register_node_schema(
    "TextEncodeAceStepAudio",
    inputs=[("clip", "CLIP")],
    outputs=[("CONDITIONING", "CONDITIONING")],
    widgets=["tags", "lyrics", "lyrics_strength"],
)
register_node_schema(
    "ConditioningZeroOut",
    inputs=[("conditioning", "CONDITIONING")],
    outputs=[("CONDITIONING", "CONDITIONING")],
)
register_node_schema(
    "LatentOperationTonemapReinhard",
    outputs=[("LATENT_OPERATION", "LATENT_OPERATION")],
    widgets=["multiplier"],
)
register_node_schema(
    "ModelSamplingSD3",
    inputs=[("model", "MODEL")],
    outputs=[("MODEL", "MODEL")],
    widgets=["shift"],
)
register_node_schema(
    "LatentApplyOperationCFG",
    inputs=[("model", "MODEL"), ("operation", "LATENT_OPERATION")],
    outputs=[("MODEL", "MODEL")],
)
register_node_schema(
    "VAEDecodeAudio",
    inputs=[("samples", "LATENT"), ("vae", "VAE")],
    outputs=[("AUDIO", "AUDIO")],
)
register_node_schema(
    "SaveAudioMP3",
    inputs=[("audio", "AUDIO")],
    widgets=["filename_prefix", "quality"],
)
register_node_schema(
    "SaveAudio",
    inputs=[("audio", "AUDIO")],
    widgets=["filename_prefix"],
)
register_node_schema(
    "LoadAudio",
    outputs=[("AUDIO", "AUDIO")],
    widgets=["audio"],
)

# Image
register_node_schema(
    "EmptyLatentImage",
    outputs=[("LATENT", "LATENT")],
    widgets=["width", "height", "batch_size"],
)
register_node_schema(
    "CLIPTextEncode",
    inputs=[("clip", "CLIP")],
    outputs=[("CONDITIONING", "CONDITIONING")],
    widgets=["text"],
)
register_node_schema(
    "VAEDecode",
    inputs=[("samples", "LATENT"), ("vae", "VAE")],
    outputs=[("IMAGE", "IMAGE")],
)
register_node_schema(
    "SaveImage",
    inputs=[("images", "IMAGE")],
    widgets=["filename_prefix"],
)
register_node_schema(
    "LoadImage",
    outputs=[("IMAGE", "IMAGE"), ("MASK", "MASK")],
    widgets=["image"],
)

# Video (Stable Video Diffusion)
register_node_schema(
    "ImageOnlyCheckpointLoader",
    outputs=[("MODEL", "MODEL"), ("CLIP_VISION", "CLIP_VISION"), ("VAE", "VAE")],
    widgets=["ckpt_name"],
)
register_node_schema(
    "SVD_img2vid_Conditioning",
    inputs=[("clip_vision", "CLIP_VISION"), ("init_image", "IMAGE"), ("vae", "VAE")],
    outputs=[("positive", "CONDITIONING"), ("negative", "CONDITIONING"), ("latent", "LATENT")],
    widgets=["width", "height", "video_frames", "motion_bucket_id", "fps", "augmentation_level"],
)
register_node_schema(
    "VideoLinearCFGGuidance",
    inputs=[("model", "MODEL")],
    outputs=[("MODEL", "MODEL")],
    widgets=["min_cfg"],
)
register_node_schema(
    "CreateVideo",
    inputs=[("images", "IMAGE"), ("audio", "AUDIO", True)],
    outputs=[("VIDEO", "VIDEO")],
    widgets=["fps"],
)
register_node_schema(
    "SaveVideo",
    inputs=[("video", "VIDEO")],
    widgets=["filename_prefix", "format", "codec"],
)
