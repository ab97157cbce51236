"""Text-to-image workflow factory."""

from services.workflow.configs import ImageWorkflowConfig
from services.workflow.graph import WorkflowGraph
from shared.exceptions import WorkflowValidationError
from shared.utils import resolve_seed

SAMPLER_NODE_ID = 3
CHECKPOINT_NODE_ID = 4
LATENT_NODE_ID = 5
POSITIVE_NODE_ID = 6
NEGATIVE_NODE_ID = 7
DECODE_NODE_ID = 8
SAVE_NODE_ID = 9


def create_workflow(config: ImageWorkflowConfig) -> WorkflowGraph:
    if not isinstance(config, ImageWorkflowConfig):
        raise WorkflowValidationError(f"Expected ImageWorkflowConfig, got {type(config).__name__}")

    graph = WorkflowGraph()
    seed, seed_control = resolve_seed(config.seed)

    graph.add_node("CheckpointLoaderSimple", 26, 474, node_id=CHECKPOINT_NODE_ID,
                   widgets_values=[config.resolved_checkpoint])
    graph.add_node("EmptyLatentImage", 473, 609, node_id=LATENT_NODE_ID,
                   widgets_values=[config.width, config.height, config.batch_size])
    graph.add_node("CLIPTextEncode", 415, 186, node_id=POSITIVE_NODE_ID,
                   widgets_values=[config.positive_prompt])
    graph.add_node("CLIPTextEncode", 413, 389, node_id=NEGATIVE_NODE_ID,
                   widgets_values=[config.negative_prompt])
    graph.add_node("KSampler", 863, 186, node_id=SAMPLER_NODE_ID, widgets_values=[
        seed,
        seed_control,
        config.steps,
        config.cfg_scale,
        config.sampler_name,
        config.scheduler,
        config.denoise,
    ])
    graph.add_node("VAEDecode", 1209, 188, node_id=DECODE_NODE_ID)
    graph.add_node("SaveImage", 1451, 189, node_id=SAVE_NODE_ID,
                   widgets_values=[config.output_filename])

    graph.add_link(CHECKPOINT_NODE_ID, 0, SAMPLER_NODE_ID, 0, "MODEL")
    graph.add_link(CHECKPOINT_NODE_ID, 1, POSITIVE_NODE_ID, 0, "CLIP")
    graph.add_link(CHECKPOINT_NODE_ID, 1, NEGATIVE_NODE_ID, 0, "CLIP")
    graph.add_link(CHECKPOINT_NODE_ID, 2, DECODE_NODE_ID, 1, "VAE")
    graph.add_link(LATENT_NODE_ID, 0, SAMPLER_NODE_ID, 3, "LATENT")
    graph.add_link(POSITIVE_NODE_ID, 0, SAMPLER_NODE_ID, 1, "CONDITIONING")
    graph.add_link(NEGATIVE_NODE_ID, 0, SAMPLER_NODE_ID, 2, "CONDITIONING")
    graph.add_link(SAMPLER_NODE_ID, 0, DECODE_NODE_ID, 0, "LATENT")
    graph.add_link(DECODE_NODE_ID, 0, SAVE_NODE_ID, 0, "IMAGE")

    graph.validate_graph()
    return graph
