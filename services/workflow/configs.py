"""Pydantic parameter records consumed by the workflow factories."""

from typing import Any, Dict, Literal, Optional, Union
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from shared.constants import (
    LATENT_DIMENSION_STEP,
    MAX_AUDIO_DURATION_SECONDS,
    MAX_IMAGE_DIMENSION,
    MAX_VIDEO_DURATION_SECONDS,
    MAX_VIDEO_FPS,
    MOTION_BUCKET_MAX,
    MOTION_BUCKET_MIN,
)
from shared.exceptions import WorkflowValidationError
from shared.types import GenerationType

DEFAULT_LYRICS = (
    "[verse]\n"
    "In the silence of the night\n"
    "Stars are shining bright\n"
    "[chorus]\n"
    "Sing with me tonight\n"
    "Everything will be alright"
)


def _check_latent_dimension(value: int) -> int:
    if value % LATENT_DIMENSION_STEP != 0:
        raise ValueError(f"must be a multiple of {LATENT_DIMENSION_STEP}, got {value}")
    return value


class AudioWorkflowConfig(BaseModel):
    """Parameters for the ACE-Step text-to-audio pipeline"""
    checkpoint_name: str = Field(default="ace_step_v1_3.5b.safetensors", min_length=1)
    tags: str = "pop, female voice, catchy melody"
    lyrics: str = DEFAULT_LYRICS
    lyrics_strength: float = Field(default=0.99, ge=0, le=10)
    duration: float = Field(default=120.0, gt=0, le=MAX_AUDIO_DURATION_SECONDS)
    batch_size: int = Field(default=1, ge=1, le=16)
    model_shift: float = Field(default=5.0, ge=0, le=100)
    tonemap_multiplier: float = Field(default=1.0, ge=0, le=100)
    seed: int = -1
    steps: int = Field(default=50, ge=1, le=1000)
    cfg_scale: float = Field(default=5.0, ge=0, le=100)
    sampler_name: str = "euler"
    scheduler: str = "simple"
    denoise: float = Field(default=1.0, ge=0, le=1)
    output_filename: str = Field(default="audio/ComfyUI", min_length=1)
    output_format: Literal["mp3", "flac", "wav"] = "mp3"
    audio_quality: Literal["V0", "128k", "320k"] = "V0"

    class Config:
        extra = "forbid"
        frozen = True
        protected_namespaces = ()

    def describe(self) -> str:
        return f"{self.tags} - {self.lyrics[:50]}"


class ImageModelSet(BaseModel):
    """Recommended checkpoint and sampling defaults for an image model family"""
    display_name: str
    checkpoint_name: str
    lora_model: Optional[str] = None
    lora_strength: float = 0.0
    model_sampling_shift: float = 0.0
    default_steps: int
    default_cfg: float
    recommended_sampler: str
    recommended_scheduler: str

    class Config:
        frozen = True
        protected_namespaces = ()


IMAGE_MODEL_SETS: Dict[str, ImageModelSet] = {
    "QWEN_IMAGE_FP8": ImageModelSet(
        display_name="Qwen-Image FP8 (High Quality)",
        checkpoint_name="qwen_image_fp8_e4m3fn.safetensors",
        model_sampling_shift=3.1,
        default_steps=20,
        default_cfg=2.5,
        recommended_sampler="euler",
        recommended_scheduler="simple",
    ),
    "QWEN_IMAGE_FP8_LIGHTNING": ImageModelSet(
        display_name="Qwen-Image FP8 Lightning (Fast)",
        checkpoint_name="qwen_image_fp8_e4m3fn.safetensors",
        lora_model="Qwen-Image-Lightning-8steps-V1.0.safetensors",
        lora_strength=1.0,
        model_sampling_shift=3.1,
        default_steps=8,
        default_cfg=1.0,
        recommended_sampler="euler",
        recommended_scheduler="simple",
    ),
    "SD_1_5": ImageModelSet(
        display_name="Stable Diffusion 1.5 (Classic)",
        checkpoint_name="v1-5-pruned-emaonly.safetensors",
        default_steps=20,
        default_cfg=7.0,
        recommended_sampler="euler_ancestral",
        recommended_scheduler="normal",
    ),
    "SDXL_TURBO": ImageModelSet(
        display_name="SDXL Turbo (Ultra Fast)",
        checkpoint_name="sd_xl_turbo_1.0_fp16.safetensors",
        default_steps=4,
        default_cfg=1.0,
        recommended_sampler="euler_ancestral",
        recommended_scheduler="normal",
    ),
}


class ImageWorkflowConfig(BaseModel):
    """Parameters for the text-to-image pipeline"""
    model_set: Literal["QWEN_IMAGE_FP8", "QWEN_IMAGE_FP8_LIGHTNING", "SD_1_5", "SDXL_TURBO"] = "QWEN_IMAGE_FP8"
    checkpoint_name: Optional[str] = None
    positive_prompt: str = "beautiful landscape, high quality, detailed"
    negative_prompt: str = "ugly, blurry, low quality"
    width: int = Field(default=1024, gt=0, le=MAX_IMAGE_DIMENSION)
    height: int = Field(default=1024, gt=0, le=MAX_IMAGE_DIMENSION)
    seed: int = -1
    steps: int = Field(default=20, ge=1, le=1000)
    cfg_scale: float = Field(default=7.0, ge=0, le=100)
    sampler_name: str = "euler"
    scheduler: str = "normal"
    denoise: float = Field(default=1.0, ge=0, le=1)
    batch_size: int = Field(default=1, ge=1, le=64)
    output_filename: str = Field(default="image/ComfyUI", min_length=1)
    output_format: Literal["png", "jpg", "webp"] = "png"

    class Config:
        extra = "forbid"
        frozen = True
        protected_namespaces = ()

    @field_validator('width', 'height')
    @classmethod
    def validate_dimension(cls, v: int) -> int:
        return _check_latent_dimension(v)

    @property
    def model_set_config(self) -> ImageModelSet:
        return IMAGE_MODEL_SETS[self.model_set]

    @property
    def resolved_checkpoint(self) -> str:
        return self.checkpoint_name or self.model_set_config.checkpoint_name

    def with_model_set_defaults(self) -> "ImageWorkflowConfig":
        """Copy with the model set's recommended steps, cfg, sampler, and scheduler"""
        model_set = self.model_set_config
        return self.model_copy(update={
            "steps": model_set.default_steps,
            "cfg_scale": model_set.default_cfg,
            "sampler_name": model_set.recommended_sampler,
            "scheduler": model_set.recommended_scheduler,
        })

    def describe(self) -> str:
        return self.positive_prompt


class VideoWorkflowConfig(BaseModel):
    """Parameters for the Stable Video Diffusion image-to-video pipeline"""
    checkpoint_name: str = Field(default="svd_xt.safetensors", min_length=1)
    image_file_path: Optional[str] = None
    audio_file_path: Optional[str] = None
    duration_seconds: float = Field(default=10.0, gt=0, le=MAX_VIDEO_DURATION_SECONDS)
    width: int = Field(default=1024, gt=0, le=MAX_IMAGE_DIMENSION)
    height: int = Field(default=1024, gt=0, le=MAX_IMAGE_DIMENSION)
    fps: int = Field(default=30, ge=1, le=MAX_VIDEO_FPS)
    motion_intensity: float = Field(default=0.5, ge=0, le=1)
    augmentation_level: float = Field(default=0.0, ge=0, le=10)
    min_cfg: float = Field(default=1.0, ge=0, le=100)
    seed: int = -1
    steps: int = Field(default=20, ge=1, le=1000)
    cfg_scale: float = Field(default=7.0, ge=0, le=100)
    sampler_name: str = "euler"
    scheduler: str = "simple"
    denoise: float = Field(default=1.0, ge=0, le=1)
    output_filename: str = Field(default="video/ComfyUI", min_length=1)
    output_format: Literal["auto", "mp4"] = "mp4"
    codec: Literal["auto", "h264"] = "auto"

    class Config:
        extra = "forbid"
        frozen = True

    @field_validator('width', 'height')
    @classmethod
    def validate_dimension(cls, v: int) -> int:
        return _check_latent_dimension(v)

    @field_validator('image_file_path', 'audio_file_path')
    @classmethod
    def blank_path_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    @model_validator(mode='after')
    def validate_frame_count(self) -> "VideoWorkflowConfig":
        if self.frame_count < 1:
            raise ValueError(
                f"duration_seconds * fps must yield at least one frame "
                f"({self.duration_seconds} * {self.fps})"
            )
        return self

    @property
    def frame_count(self) -> int:
        return int(round(self.duration_seconds * self.fps))

    @property
    def motion_bucket_id(self) -> int:
        span = MOTION_BUCKET_MAX - MOTION_BUCKET_MIN
        return int(round(MOTION_BUCKET_MIN + self.motion_intensity * span))

    def describe(self) -> str:
        source = self.image_file_path or "placeholder image"
        return f"{source} ({self.duration_seconds:g}s @ {self.fps} fps, motion {self.motion_intensity:g})"


WorkflowConfig = Union[AudioWorkflowConfig, ImageWorkflowConfig, VideoWorkflowConfig]

CONFIG_TYPES = {
    GenerationType.AUDIO: AudioWorkflowConfig,
    GenerationType.IMAGE: ImageWorkflowConfig,
    GenerationType.VIDEO: VideoWorkflowConfig,
}


def build_config(generation_type: Union[GenerationType, str], data: Optional[Dict[str, Any]] = None) -> WorkflowConfig:
    """Validates raw parameters into the config variant for generation_type"""
    try:
        config_cls = CONFIG_TYPES[GenerationType(generation_type)]
    except ValueError:
        raise WorkflowValidationError(f"Unknown generation type: {generation_type}")

    try:
        return config_cls(**(data or {}))
    except ValidationError as e:
        raise WorkflowValidationError(
            f"Invalid {config_cls.__name__}: {e}",
            generation_type=str(generation_type),
            errors=e.errors(include_url=False),
        )
