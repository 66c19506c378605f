"""
Delivery Batch Type.

A batch is what the walk store hands over to the delivery pipeline when
a window is grabbed: the walks that were resident in one vertex block.
Once handed over, the walk store never touches the arrays again.
"""

from dataclasses import dataclass

import numpy as np


@dataclass
class DeliveryBatch:
    """
    Walks reported for one block of vertices.

    Attributes:
        first_vertex: Base vertex id of the block
        source_indices: Source index of each walk [n]
        offsets: Vertex offset of each walk relative to first_vertex [n]
    """
    first_vertex: int
    source_indices: np.ndarray
    offsets: np.ndarray

    def __len__(self) -> int:
        return int(self.source_indices.size)

    def vertices(self) -> np.ndarray:
        """Absolute vertex id of each walk."""
        return self.offsets + self.first_vertex
