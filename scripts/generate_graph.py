#!/usr/bin/env python3
"""
Graph Generation Script.

Writes a synthetic directed random graph as an edge list that
run_walks.py can load.

Usage:
    python scripts/generate_graph.py --num-nodes 10000 --output data/graph.txt
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from drunkardmob.utils import (
    compute_graph_statistics,
    create_synthetic_graph,
    save_edge_list,
    to_undirected
)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Generate a synthetic graph')

    parser.add_argument(
        '--num-nodes', type=int, default=10000,
        help='Number of nodes'
    )
    parser.add_argument(
        '--avg-degree', type=float, default=5.0,
        help='Average out-degree'
    )
    parser.add_argument(
        '--undirected', action='store_true',
        help='Add the reverse of every edge'
    )
    parser.add_argument(
        '--output', type=str, default='data/graph.txt',
        help='Output edge list file'
    )
    parser.add_argument(
        '--seed', type=int, default=42,
        help='Random seed'
    )

    return parser.parse_args(argv)


def main(argv=None):
    """Main graph generation function."""
    args = parse_args(argv)

    edge_index = create_synthetic_graph(args.num_nodes, args.avg_degree, seed=args.seed)
    if args.undirected:
        edge_index = to_undirected(edge_index)

    save_edge_list(edge_index, args.output)

    stats = compute_graph_statistics(edge_index, args.num_nodes)
    print(f"Wrote {stats['num_edges']} edges over {stats['num_nodes']} nodes to {args.output}")
    print(f"  Average out-degree: {stats['avg_out_degree']:.2f}")
    print(f"  Dead ends: {stats['dead_ends']}")


if __name__ == '__main__':
    main()
