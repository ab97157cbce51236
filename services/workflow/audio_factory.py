"""ACE-Step text-to-audio workflow factory."""

from services.workflow.configs import AudioWorkflowConfig
from services.workflow.graph import WorkflowGraph
from shared.exceptions import WorkflowValidationError
from shared.utils import resolve_seed

CHECKPOINT_NODE_ID = 40
LATENT_NODE_ID = 17
TEXT_ENCODE_NODE_ID = 14
ZERO_OUT_NODE_ID = 44
TONEMAP_NODE_ID = 50
MODEL_SAMPLING_NODE_ID = 51
APPLY_CFG_NODE_ID = 49
SAMPLER_NODE_ID = 52
DECODE_NODE_ID = 18
SAVE_NODE_ID = 59


def create_workflow(config: AudioWorkflowConfig) -> WorkflowGraph:
    if not isinstance(config, AudioWorkflowConfig):
        raise WorkflowValidationError(f"Expected AudioWorkflowConfig, got {type(config).__name__}")

    graph = WorkflowGraph()
    seed, seed_control = resolve_seed(config.seed)

    graph.add_node("CheckpointLoaderSimple", 180, -160, node_id=CHECKPOINT_NODE_ID,
                   widgets_values=[config.checkpoint_name])
    graph.add_node("EmptyAceStepLatentAudio", 180, 50, node_id=LATENT_NODE_ID,
                   widgets_values=[config.duration, config.batch_size])
    graph.add_node("TextEncodeAceStepAudio", 590, 120, node_id=TEXT_ENCODE_NODE_ID,
                   widgets_values=[config.tags, config.lyrics, config.lyrics_strength])
    graph.add_node("ConditioningZeroOut", 600, 70, node_id=ZERO_OUT_NODE_ID)
    graph.add_node("LatentOperationTonemapReinhard", 590, -160, node_id=TONEMAP_NODE_ID,
                   widgets_values=[config.tonemap_multiplier])
    graph.add_node("ModelSamplingSD3", 590, -40, node_id=MODEL_SAMPLING_NODE_ID,
                   widgets_values=[config.model_shift])
    graph.add_node("LatentApplyOperationCFG", 940, -160, node_id=APPLY_CFG_NODE_ID)
    graph.add_node("KSampler", 1000, 10, node_id=SAMPLER_NODE_ID, widgets_values=[
        seed,
        seed_control,
        config.steps,
        config.cfg_scale,
        config.sampler_name,
        config.scheduler,
        config.denoise,
    ])
    graph.add_node("VAEDecodeAudio", 1080, 340, node_id=DECODE_NODE_ID)

    if config.output_format == "mp3":
        graph.add_node("SaveAudioMP3", 1420, 20, node_id=SAVE_NODE_ID,
                       widgets_values=[config.output_filename, config.audio_quality])
    else:
        graph.add_node("SaveAudio", 1420, 20, node_id=SAVE_NODE_ID,
                       widgets_values=[config.output_filename])

    graph.add_link(CHECKPOINT_NODE_ID, 1, TEXT_ENCODE_NODE_ID, 0, "CLIP")
    graph.add_link(CHECKPOINT_NODE_ID, 2, DECODE_NODE_ID, 1, "VAE")
    graph.add_link(TEXT_ENCODE_NODE_ID, 0, ZERO_OUT_NODE_ID, 0, "CONDITIONING")
    graph.add_link(MODEL_SAMPLING_NODE_ID, 0, APPLY_CFG_NODE_ID, 0, "MODEL")
    graph.add_link(TONEMAP_NODE_ID, 0, APPLY_CFG_NODE_ID, 1, "LATENT_OPERATION")
    graph.add_link(CHECKPOINT_NODE_ID, 0, MODEL_SAMPLING_NODE_ID, 0, "MODEL")
    graph.add_link(TEXT_ENCODE_NODE_ID, 0, SAMPLER_NODE_ID, 1, "CONDITIONING")
    graph.add_link(LATENT_NODE_ID, 0, SAMPLER_NODE_ID, 3, "LATENT")
    graph.add_link(ZERO_OUT_NODE_ID, 0, SAMPLER_NODE_ID, 2, "CONDITIONING")
    graph.add_link(APPLY_CFG_NODE_ID, 0, SAMPLER_NODE_ID, 0, "MODEL")
    graph.add_link(SAMPLER_NODE_ID, 0, DECODE_NODE_ID, 0, "LATENT")
    graph.add_link(DECODE_NODE_ID, 0, SAVE_NODE_ID, 0, "AUDIO")

    graph.validate_graph()
    return graph
