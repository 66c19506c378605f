#!/usr/bin/env python3
"""
Random Walk Job Script.

This script runs one DrunkardMob job:
1. Loads or creates the graph
2. Registers sources and initializes walks
3. Runs max_hops + 1 iterations, delivering landings to the companion
4. Exports the per-source distributions

Usage:
    python scripts/run_walks.py --graph data/graph.txt --num-sources 100
    python scripts/run_walks.py --num-nodes 10000 --walks-per-source 500
"""

import argparse
import sys
import time
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config import load_config, validate_job_config
from drunkardmob.runner import run_job
from drunkardmob.utils import (
    compute_graph_statistics,
    create_synthetic_graph,
    load_edge_list,
    setup_logging
)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Run DrunkardMob random walks')

    parser.add_argument(
        '--config', type=str, default=None,
        help='Path to configuration file (default: config/default.yaml)'
    )
    parser.add_argument(
        '--graph', type=str, default=None,
        help='Edge list file ("src dst" per line)'
    )
    parser.add_argument(
        '--num-nodes', type=int, default=10000,
        help='Number of nodes for synthetic graph'
    )
    parser.add_argument(
        '--avg-degree', type=float, default=5.0,
        help='Average out-degree for synthetic graph'
    )
    parser.add_argument(
        '--num-sources', type=int, default=None,
        help='Number of sources (overrides config)'
    )
    parser.add_argument(
        '--walks-per-source', type=int, default=None,
        help='Walks per source (overrides config)'
    )
    parser.add_argument(
        '--max-hops', type=int, default=None,
        help='Maximum hops (overrides config)'
    )
    parser.add_argument(
        '--first-source', type=int, default=None,
        help='First source vertex (overrides config)'
    )
    parser.add_argument(
        '--output-dir', type=str, default=None,
        help='Output directory (overrides config)'
    )
    parser.add_argument(
        '--log-level', type=str, default='INFO',
        help='Logging level'
    )
    parser.add_argument(
        '--log-file', type=str, default=None,
        help='Also log to this file'
    )

    return parser.parse_args(argv)


def main(argv=None):
    """Main walk job function."""
    args = parse_args(argv)
    setup_logging(args.log_level, args.log_file)

    print("=" * 60)
    print("DrunkardMob Random Walks")
    print("=" * 60)

    # Load config
    config = load_config(args.config)

    # Override config with command line args
    if args.num_sources is not None:
        config['walks']['num_sources'] = args.num_sources
    if args.walks_per_source is not None:
        config['walks']['walks_per_source'] = args.walks_per_source
    if args.max_hops is not None:
        config['walks']['max_hops'] = args.max_hops
    if args.first_source is not None:
        config['walks']['first_source'] = args.first_source
    if args.output_dir is not None:
        config['output']['dir'] = args.output_dir

    validate_job_config(config)
    walk_config = config['walks']

    # Step 1: Load or create graph
    print("\n[1/3] Loading/creating graph...")
    start_time = time.time()

    if args.graph:
        print(f"  Loading from: {args.graph}")
        edge_index, num_nodes = load_edge_list(args.graph)
        base_name = Path(args.graph).stem
    else:
        print(f"  Creating synthetic graph: {args.num_nodes} nodes, avg degree {args.avg_degree}")
        edge_index = create_synthetic_graph(args.num_nodes, args.avg_degree, seed=walk_config.get('seed'))
        num_nodes = args.num_nodes
        base_name = f"synthetic_{num_nodes}"

    stats = compute_graph_statistics(edge_index, num_nodes)
    print(f"  Nodes: {stats['num_nodes']}")
    print(f"  Edges: {stats['num_edges']}")
    print(f"  Dead ends: {stats['dead_ends']}")
    print(f"  Done in {time.time() - start_time:.2f}s")

    # Step 2: Run walks
    first_source = walk_config['first_source']
    print("\n[2/3] Running walks...")
    print(f"  Walks will start from vertices {first_source} -- "
          f"{first_source + walk_config['num_sources'] - 1}")
    print(f"  Going to start {walk_config['walks_per_source']} walks per source.")
    print(f"  Max hops: {walk_config['max_hops']}")

    output_dir = Path(config['output']['dir'])
    output_prefix = str(output_dir / f"{base_name}_{first_source}")

    result = run_job(config, edge_index, num_nodes, output_prefix=output_prefix)

    delivery = result['program']['delivery']
    print(f"  Hops: {result['program']['hops']:,}, resets: {result['program']['resets']:,}")
    print(f"  Walks sent: {delivery['walks_sent']:,}, "
          f"self landings ignored: {delivery['ignored_self_landings']:,}, "
          f"dropped: {delivery['walks_dropped']:,}")
    print(f"  Done in {result['elapsed_seconds']:.2f}s")

    # Step 3: Export
    print("\n[3/3] Distributions written to:")
    print(f"  {result['output_path']}")

    print("\n" + "=" * 60)
    print("Walk job complete!")
    print("=" * 60)

    return result


if __name__ == '__main__':
    main()
