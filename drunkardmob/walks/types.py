"""
Walk Record Types.

Walk state is stored structure-of-arrays style: a walk is nothing more
than its source index and one step-parity flag, and the vertex it sits
at is implied by the bucket holding it.
"""

from dataclasses import dataclass
from typing import List

import numpy as np

# Vertices are grouped into blocks of 2**BLOCK_BITS consecutive ids
BLOCK_BITS = 7
BLOCK_SIZE = 1 << BLOCK_BITS
BLOCK_MASK = BLOCK_SIZE - 1


class WalkInitializationError(RuntimeError):
    """Raised when walks are registered or initialized incorrectly."""


class SnapshotStateError(RuntimeError):
    """Raised when a window snapshot is misused."""


@dataclass
class WalkRecords:
    """
    Walks resident at a single vertex.

    Attributes:
        source_indices: Source index of each walk [n]
        hops: Step parity of each walk [n]
    """
    source_indices: np.ndarray
    hops: np.ndarray

    def __len__(self) -> int:
        return int(self.source_indices.size)


class WalkBlock:
    """
    Walks resident in one block of BLOCK_SIZE consecutive vertices.

    Appends go to plain Python lists; arrays are only built when the
    block is grabbed into a snapshot.
    """

    __slots__ = ('sources', 'offsets', 'hops')

    def __init__(self):
        self.sources: List[int] = []
        self.offsets: List[int] = []
        self.hops: List[bool] = []

    def append(self, source_idx: int, offset: int, hop: bool) -> None:
        self.sources.append(source_idx)
        self.offsets.append(offset)
        self.hops.append(hop)

    def extend(self, source_indices, offset: int, hops) -> None:
        """Add many walks at the same offset."""
        source_indices = list(source_indices)
        self.sources.extend(source_indices)
        self.offsets.extend([offset] * len(source_indices))
        self.hops.extend(hops)

    def to_arrays(self):
        """
        Get the block content as numpy arrays.

        Returns:
            Tuple of (sources int64, offsets int64, hops bool)
        """
        return (
            np.asarray(self.sources, dtype=np.int64),
            np.asarray(self.offsets, dtype=np.int64),
            np.asarray(self.hops, dtype=bool),
        )

    @classmethod
    def from_arrays(cls, sources: np.ndarray, offsets: np.ndarray, hops: np.ndarray) -> 'WalkBlock':
        block = cls()
        block.sources = sources.tolist()
        block.offsets = offsets.tolist()
        block.hops = hops.tolist()
        return block

    def __len__(self) -> int:
        return len(self.sources)
