"""
Flow Sampler.
Picks distinct non-sink source nodes and staggers their start times.
"""

import logging
import numpy as np
from typing import Optional, Tuple
from dataclasses import dataclass
from .config import (SINK_ID, FLOW_START_FACTOR, ConfigurationError,
                     wall_clock_seed)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Flow:
    """One source-to-sink traffic stream."""
    flow_id: int
    source: int
    start_time: float
    sink: int = SINK_ID


@dataclass(frozen=True)
class FlowAssignment:
    """Immutable set of flows installed for one run, all toward the sink."""
    flows: Tuple[Flow, ...]
    sink: int = SINK_ID

    def __post_init__(self):
        sources = [f.source for f in self.flows]
        if len(set(sources)) != len(sources):
            raise ValueError(f"Duplicate flow sources: {sources}")
        if self.sink in sources:
            raise ValueError(f"Sink {self.sink} cannot be a flow source")

    def __len__(self):
        return len(self.flows)

    def __iter__(self):
        return iter(self.flows)

    @property
    def sources(self) -> Tuple[int, ...]:
        return tuple(f.source for f in self.flows)


def create_flow_rng(flow_seed: Optional[int] = None) -> np.random.RandomState:
    """
    Random source for flow sampling.
    Independent from the mobility source; falls back to a wall-clock seed.
    """
    if flow_seed is None:
        flow_seed = wall_clock_seed()
        logger.info("Flow sampler seeded from wall clock: %d", flow_seed)
    return np.random.RandomState(flow_seed)


def sample_flows(n_nodes: int, num_flows: int, rng: np.random.RandomState,
                 base_offset: float = 1.0) -> FlowAssignment:
    """
    Sample `num_flows` distinct sources from {1 .. n_nodes-1}.

    Shuffle-then-take-prefix, so every draw is collision free.
    Each source gets start time base_offset * (0.01 * source).
    """
    available = n_nodes - 1
    if num_flows < 1 or num_flows > available:
        raise ConfigurationError(
            f"Cannot sample {num_flows} flows from {available} non-sink nodes")

    candidates = np.arange(SINK_ID + 1, n_nodes)
    rng.shuffle(candidates)
    chosen = candidates[:num_flows]

    flows = tuple(
        Flow(flow_id=i + 1,
             source=int(source),
             start_time=base_offset * (FLOW_START_FACTOR * int(source)))
        for i, source in enumerate(chosen)
    )
    logger.debug("Sampled sources %s", [f.source for f in flows])
    return FlowAssignment(flows=flows)
