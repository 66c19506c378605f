"""
Utilities Module.

This module provides helper functions for:
- Loading, building and inspecting graphs
- Logging setup for scripts
"""

from .graph_utils import (
    edge_index_to_csr,
    load_edge_list,
    save_edge_list,
    create_synthetic_graph,
    from_networkx,
    to_undirected,
    compute_graph_statistics
)
from .logging_utils import setup_logging

__all__ = [
    # Graph utils
    'edge_index_to_csr',
    'load_edge_list',
    'save_edge_list',
    'create_synthetic_graph',
    'from_networkx',
    'to_undirected',
    'compute_graph_statistics',
    # Logging
    'setup_logging',
]
