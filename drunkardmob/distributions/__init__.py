"""
Distribution Module.

Sparse frequency distributions used to accumulate where walks land.

Classes:
    DiscreteDistribution: Sorted id -> count map with merge and avoidance
    IdCount: (id, count) pair returned by top-k queries

Example:
    >>> from drunkardmob.distributions import DiscreteDistribution
    >>>
    >>> hits = DiscreteDistribution([2, 2, 2, 5, 7, 7])
    >>> hits.get_top(2)
    [IdCount(id=2, count=3), IdCount(id=7, count=2)]
"""

from .discrete import DiscreteDistribution, IdCount, AVOIDED

__all__ = [
    'DiscreteDistribution',
    'IdCount',
    'AVOIDED',
]
