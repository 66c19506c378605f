"""
Job Runner.

Wires a walk store, a walk program, a delivery pipeline and an engine
together for one job: register the sources, initialize the walks, run
max_hops + 1 iterations and export the distributions.
"""

import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional

import torch

from .companion import LocalCompanion
from .delivery import DeliveryPipeline
from .engine import InMemoryEngine
from .walks import DrunkardMobProgram, WalkManager

logger = logging.getLogger(__name__)


def build_walk_manager(num_vertices: int, num_sources: int, walks_per_source: int,
                       first_source: int) -> WalkManager:
    """
    Register consecutive sources starting at first_source and initialize walks.

    Returns:
        Initialized walk manager
    """
    if first_source + num_sources > num_vertices:
        raise ValueError(
            f"Sources {first_source}..{first_source + num_sources - 1} exceed graph "
            f"with {num_vertices} vertices"
        )

    manager = WalkManager(num_vertices, num_sources)
    for i in range(num_sources):
        manager.add_walk_batch(first_source + i, walks_per_source)
        if i % 100000 == 0:
            logger.info("Add walk batch: %d", first_source + i)

    manager.initialize_walks()
    return manager


def run_job(
    config: Dict[str, Any],
    edge_index: torch.Tensor,
    num_nodes: int,
    output_prefix: Optional[str] = None,
    companion=None
) -> Dict[str, Any]:
    """
    Run one walk job on an in-memory graph.

    Args:
        config: Validated configuration dictionary
        edge_index: Edge tensor of shape [2, num_edges]
        num_nodes: Total number of nodes
        output_prefix: Export prefix (None = no export)
        companion: Aggregator client (None = new LocalCompanion)

    Returns:
        Dictionary with the companion, output path and statistics
    """
    walk_config = config['walks']
    delivery_config = config['delivery']
    companion_config = config.get('companion', {})

    if companion is None:
        companion = LocalCompanion(
            buffer_limit=companion_config.get('buffer_limit', 4096),
            top_n=companion_config.get('top_n')
        )

    t = time.time()
    manager = build_walk_manager(
        num_nodes,
        walk_config['num_sources'],
        walk_config['walks_per_source'],
        walk_config['first_source']
    )

    pipeline = DeliveryPipeline(
        companion,
        manager,
        batch_size=delivery_config['batch_size'],
        poll_interval=delivery_config['poll_interval'],
        backlog_divisor=delivery_config['backlog_divisor'],
        admission_poll=delivery_config['admission_poll'],
        max_queued_batches=delivery_config.get('max_queued_batches')
    )
    program = DrunkardMobProgram(
        manager,
        companion,
        pipeline=pipeline,
        reset_probability=walk_config['reset_probability'],
        seed=walk_config.get('seed')
    )
    program.initialize_companion()
    logger.info("Configured %d walks in %.2fs", manager.total_walks(), time.time() - t)

    engine = InMemoryEngine(
        edge_index,
        num_nodes,
        window_size=config['engine']['window_size'],
        seed=walk_config.get('seed')
    )

    t = time.time()
    try:
        engine.run(program, walk_config['max_hops'] + 1)
    finally:
        # Never leave the sender thread behind
        program.on_run_end()

    output_path = program.finish(output_prefix)
    if output_path is not None:
        output_path = Path(output_path)

    return {
        'companion': companion,
        'output_path': output_path,
        'elapsed_seconds': time.time() - t,
        'program': program.get_statistics(),
        'engine': engine.get_statistics(),
    }
