"""
Graph Utilities Module.

This module provides helpers to load, build and inspect the graphs walks
run on. Graphs are passed around as an edge_index tensor [2, num_edges]
of (source, target) pairs plus a node count.
"""

from collections import Counter
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import networkx as nx
import numpy as np
import torch


def edge_index_to_csr(edge_index: torch.Tensor, num_nodes: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert edge_index to a compressed sparse row adjacency.

    Out-neighbors of vertex v are indices[indptr[v]:indptr[v + 1]].

    Args:
        edge_index: Edge indices [2, num_edges]
        num_nodes: Total number of nodes

    Returns:
        Tuple of (indptr [num_nodes + 1], indices [num_edges])
    """
    if edge_index.numel() == 0:
        return np.zeros(num_nodes + 1, dtype=np.int64), np.zeros(0, dtype=np.int64)

    src = edge_index[0].cpu().long()
    dst = edge_index[1].cpu().long()
    if int(src.max()) >= num_nodes or int(dst.max()) >= num_nodes:
        raise ValueError(f"edge_index refers to nodes outside [0, {num_nodes})")

    # Sort edges by source; stable keeps the input order of each adjacency
    order = torch.sort(src, stable=True).indices
    degrees = torch.bincount(src, minlength=num_nodes)

    indptr = np.zeros(num_nodes + 1, dtype=np.int64)
    indptr[1:] = np.cumsum(degrees.numpy())
    indices = dst[order].numpy().astype(np.int64)
    return indptr, indices


def load_edge_list(path: Union[str, Path], num_nodes: Optional[int] = None) -> Tuple[torch.Tensor, int]:
    """
    Load a whitespace separated edge list.

    Each non-empty line is "src dst"; lines starting with '#' are skipped.

    Args:
        path: Path to edge list file
        num_nodes: Node count (None = max id + 1)

    Returns:
        Tuple of (edge_index, num_nodes)
    """
    src, dst = [], []
    with open(path, 'r') as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            parts = line.split()
            if len(parts) < 2:
                raise ValueError(f"{path}:{line_no}: expected 'src dst', got {line!r}")
            src.append(int(parts[0]))
            dst.append(int(parts[1]))

    edge_index = torch.tensor([src, dst], dtype=torch.long).reshape(2, -1)
    if num_nodes is None:
        num_nodes = int(edge_index.max()) + 1 if edge_index.numel() > 0 else 0
    return edge_index, num_nodes


def save_edge_list(edge_index: torch.Tensor, path: Union[str, Path]) -> None:
    """Write edge_index as a "src dst" edge list."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        for s, d in zip(edge_index[0].tolist(), edge_index[1].tolist()):
            f.write(f"{s} {d}\n")


def create_synthetic_graph(
    num_nodes: int,
    avg_out_degree: float = 5.0,
    seed: Optional[int] = 42
) -> torch.Tensor:
    """
    Create a directed random graph.

    Uses a G(n, m) random digraph from NetworkX with
    m = num_nodes * avg_out_degree edges.

    Args:
        num_nodes: Number of nodes
        avg_out_degree: Average out-degree
        seed: Random seed

    Returns:
        Edge index [2, num_edges]
    """
    num_edges = int(num_nodes * avg_out_degree)
    max_edges = num_nodes * (num_nodes - 1)
    graph = nx.gnm_random_graph(num_nodes, min(num_edges, max_edges), seed=seed, directed=True)
    return from_networkx(graph)


def from_networkx(graph: nx.Graph) -> torch.Tensor:
    """
    Build edge_index from a NetworkX graph with integer nodes 0..n-1.

    Undirected graphs contribute both directions of every edge.
    """
    edges = list(graph.edges())
    if not graph.is_directed():
        edges = edges + [(d, s) for s, d in edges if s != d]
    if not edges:
        return torch.zeros((2, 0), dtype=torch.long)
    return torch.tensor(edges, dtype=torch.long).t().contiguous()


def to_undirected(edge_index: torch.Tensor) -> torch.Tensor:
    """
    Convert directed edge_index to undirected.

    Args:
        edge_index: Directed edge indices [2, num_edges]

    Returns:
        Edge indices with every reverse edge added (duplicates removed)
    """
    if edge_index.numel() == 0:
        return edge_index

    all_edges = torch.cat([edge_index, edge_index.flip(0)], dim=1)
    return torch.unique(all_edges, dim=1)


def compute_graph_statistics(edge_index: torch.Tensor, num_nodes: int) -> Dict:
    """
    Compute out-degree statistics relevant to walking.

    Args:
        edge_index: Edge indices [2, num_edges]
        num_nodes: Total number of nodes

    Returns:
        Dictionary with graph statistics
    """
    num_edges = edge_index.shape[1] if edge_index.numel() > 0 else 0

    if num_edges == 0:
        out_degrees = torch.zeros(num_nodes, dtype=torch.long)
    else:
        out_degrees = torch.bincount(edge_index[0].cpu(), minlength=num_nodes)

    histogram = {int(k): v for k, v in sorted(Counter(out_degrees.tolist()).items())}
    max_edges = num_nodes * (num_nodes - 1)

    return {
        'num_nodes': num_nodes,
        'num_edges': num_edges,
        'density': num_edges / max_edges if max_edges > 0 else 0.0,
        'avg_out_degree': out_degrees.float().mean().item() if num_nodes > 0 else 0.0,
        'max_out_degree': int(out_degrees.max().item()) if num_nodes > 0 else 0,
        'dead_ends': int((out_degrees == 0).sum().item()),
        'degree_histogram': histogram,
    }
