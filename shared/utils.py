"""Shared utilities."""

import random
import uuid
from datetime import datetime, timezone
from typing import Tuple
from shared.constants import MAX_SEED


def generate_task_id() -> str:
    return str(uuid.uuid4())


def generate_graph_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_seed(seed: int) -> Tuple[int, str]:
    """Returns (seed, control_after_generate) for a sampler widget list"""
    if seed >= 0:
        return seed, "fixed"
    return random.randint(1, MAX_SEED), "randomize"
