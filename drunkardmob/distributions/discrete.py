"""
Discrete Distribution Module.

This module implements a sparse map from integer ids to frequencies.
The aggregator keeps one of these per source and merges hits into it.

Key Concept:
    Ids are kept sorted and unique, so lookups are binary searches and
    merging two distributions is a merge of two sorted runs. A count of -1
    marks an id as avoided: once avoided, no merge can change it.
"""

import heapq
from typing import Iterable, List, NamedTuple, Union

import numpy as np

AVOIDED = -1


class IdCount(NamedTuple):
    """An (id, count) pair returned by top-k queries."""
    id: int
    count: int


def _as_id_array(values: Union[Iterable[int], np.ndarray]) -> np.ndarray:
    if not isinstance(values, (np.ndarray, list, tuple)):
        values = list(values)
    return np.asarray(values, dtype=np.int64).reshape(-1)


class DiscreteDistribution:
    """
    Sparse integer -> frequency map with avoidance semantics.

    Instances are immutable after construction: the backing numpy arrays
    are flagged read-only and every operation returns a new object.

    Example:
        >>> from drunkardmob.distributions import DiscreteDistribution
        >>>
        >>> d = DiscreteDistribution([2, 2, 2, 5, 7, 7])
        >>> d.get_count(2)
        3
        >>> avoid = DiscreteDistribution.avoidance([2])
        >>> DiscreteDistribution.merge(avoid, d).get_count(2)
        -1
    """

    __slots__ = ('_ids', '_counts')

    def __init__(self, sorted_ids: Union[Iterable[int], np.ndarray] = ()):
        """
        Build a distribution from a sorted sequence of ids.

        Runs of equal ids are collapsed into a single entry whose count is
        the run length.

        Args:
            sorted_ids: Non-decreasing sequence of ids

        Raises:
            ValueError: If the ids are not sorted
        """
        ids = _as_id_array(sorted_ids)

        if ids.size == 0:
            self._set(np.empty(0, dtype=np.int64), np.empty(0, dtype=np.int64))
            return

        if ids.size > 1 and np.any(ids[1:] < ids[:-1]):
            raise ValueError("DiscreteDistribution requires sorted ids")

        # Start of every run of equal ids
        starts = np.flatnonzero(np.concatenate(([True], ids[1:] != ids[:-1])))
        counts = np.diff(np.append(starts, ids.size))

        self._set(ids[starts], counts.astype(np.int64))

    def _set(self, ids: np.ndarray, counts: np.ndarray) -> None:
        ids = np.ascontiguousarray(ids, dtype=np.int64)
        counts = np.ascontiguousarray(counts, dtype=np.int64)
        ids.setflags(write=False)
        counts.setflags(write=False)
        self._ids = ids
        self._counts = counts

    @classmethod
    def _from_arrays(cls, ids: np.ndarray, counts: np.ndarray) -> 'DiscreteDistribution':
        dist = cls.__new__(cls)
        dist._set(ids, counts)
        return dist

    @classmethod
    def from_sorted(cls, sorted_ids: Union[Iterable[int], np.ndarray]) -> 'DiscreteDistribution':
        """Alias of the constructor, reads better at call sites."""
        return cls(sorted_ids)

    @classmethod
    def avoidance(cls, sorted_ids: Union[Iterable[int], np.ndarray]) -> 'DiscreteDistribution':
        """
        Create an avoidance distribution where every count is -1.

        Merging it into another distribution permanently excludes its ids.

        Args:
            sorted_ids: Non-decreasing sequence of ids to avoid

        Returns:
            Avoidance distribution
        """
        base = cls(sorted_ids)
        return cls._from_arrays(base._ids, np.full(base._ids.size, AVOIDED, dtype=np.int64))

    @property
    def ids(self) -> np.ndarray:
        return self._ids

    @property
    def counts(self) -> np.ndarray:
        return self._counts

    def size(self) -> int:
        """Number of unique ids, avoided ones included."""
        return int(self._ids.size)

    def __len__(self) -> int:
        return self.size()

    def get_count(self, id_: int) -> int:
        """
        Look up the count of an id.

        Returns:
            Stored count (-1 if avoided) or 0 if the id is absent
        """
        idx = int(np.searchsorted(self._ids, id_))
        if idx < self._ids.size and self._ids[idx] == id_:
            return int(self._counts[idx])
        return 0

    def total_count(self) -> int:
        """Sum of all positive counts."""
        return int(self._counts[self._counts > 0].sum())

    def num_avoided(self) -> int:
        return int(np.count_nonzero(self._counts < 0))

    def items(self) -> List[IdCount]:
        return [IdCount(int(i), int(c)) for i, c in zip(self._ids, self._counts)]

    @staticmethod
    def merge(d1: 'DiscreteDistribution', d2: 'DiscreteDistribution') -> 'DiscreteDistribution':
        """
        Merge two distributions.

        Counts of ids present in both are summed. If either side has a
        negative (avoidance) entry for an id, the merged entry is -1.
        Entries present in only one side carry over unchanged.

        Args:
            d1: First distribution
            d2: Second distribution

        Returns:
            New merged distribution
        """
        if d1.size() == 0:
            return d2
        if d2.size() == 0:
            return d1

        ids = np.concatenate((d1._ids, d2._ids))
        counts = np.concatenate((d1._counts, d2._counts))

        # Two sorted runs: a stable sort is a linear merge of them
        order = np.argsort(ids, kind='stable')
        ids = ids[order]
        counts = counts[order]

        starts = np.flatnonzero(np.concatenate(([True], ids[1:] != ids[:-1])))
        merged_counts = np.add.reduceat(counts, starts)

        # Force to retain negativity
        avoided = np.minimum.reduceat(counts, starts) < 0
        merged_counts[avoided] = AVOIDED

        return DiscreteDistribution._from_arrays(ids[starts], merged_counts)

    def get_top(self, k: int) -> List[IdCount]:
        """
        Get the k ids with the largest counts.

        Uses a bounded min-heap of size k, so the cost is O(n log k).
        Only entries with a non-negative count are candidates: avoided ids
        are never returned. When fewer than k such entries exist, all of
        them are returned, so a distribution holding only avoided ids
        yields an empty list. Ties are broken by smaller id.

        Args:
            k: Number of entries to return

        Returns:
            List of at most k IdCount in descending count order
        """
        if k <= 0:
            return []

        heap: List[tuple] = []
        for id_, count in zip(self._ids.tolist(), self._counts.tolist()):
            if count < 0:
                continue
            # Heap key: larger count wins, then smaller id
            key = (count, -id_)
            if len(heap) < k:
                heapq.heappush(heap, key)
            elif key > heap[0]:
                heapq.heapreplace(heap, key)

        heap.sort(reverse=True)
        return [IdCount(-neg_id, count) for count, neg_id in heap]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DiscreteDistribution):
            return NotImplemented
        return (np.array_equal(self._ids, other._ids)
                and np.array_equal(self._counts, other._counts))

    def __hash__(self) -> int:
        return hash((self._ids.tobytes(), self._counts.tobytes()))

    def __repr__(self) -> str:
        return (f"DiscreteDistribution(size={self.size()}, "
                f"total={self.total_count()}, avoided={self.num_avoided()})")
