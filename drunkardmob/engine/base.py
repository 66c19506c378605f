"""
Traversal Driver Surface.

A traversal engine streams the graph window by window and calls into a
TraversalProgram. The program never drives the engine; it only reacts to
these callbacks, so any engine that can produce them can run walks.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np


@dataclass(frozen=True)
class VertexInterval:
    """Closed range of vertex ids processed together."""
    first_vertex: int
    last_vertex: int

    def __len__(self) -> int:
        return self.last_vertex - self.first_vertex + 1

    def __contains__(self, vertex: int) -> bool:
        return self.first_vertex <= vertex <= self.last_vertex


class VertexScheduler:
    """
    Work list of vertices to visit.

    Stored as a boolean vector over all vertices.
    """

    def __init__(self, num_vertices: int):
        self.num_vertices = num_vertices
        self._tasks = np.zeros(num_vertices, dtype=bool)

    def add_task(self, vertex: int) -> None:
        self._tasks[vertex] = True

    def add_tasks(self, vertices) -> None:
        self._tasks[np.asarray(vertices, dtype=np.int64)] = True

    def remove_task(self, vertex: int) -> None:
        self._tasks[vertex] = False

    def remove_tasks(self, first_vertex: int, last_vertex: int) -> None:
        self._tasks[first_vertex:last_vertex + 1] = False

    def remove_all_tasks(self) -> None:
        self._tasks[:] = False

    def is_scheduled(self, vertex: int) -> bool:
        return bool(self._tasks[vertex])

    def scheduled_in(self, first_vertex: int, last_vertex: int) -> np.ndarray:
        """Scheduled vertices of a range, ascending."""
        return np.flatnonzero(self._tasks[first_vertex:last_vertex + 1]) + first_vertex

    def num_tasks(self) -> int:
        return int(np.count_nonzero(self._tasks))


class TraversalProgram(ABC):
    """Callbacks a traversal engine invokes while streaming the graph."""

    @abstractmethod
    def on_iteration_start(self, iteration: int, scheduler: VertexScheduler) -> None:
        """Called before the first window of every iteration."""

    @abstractmethod
    def on_window_start(self, interval: VertexInterval, scheduler: VertexScheduler) -> None:
        """Called before any vertex of the window is visited."""

    @abstractmethod
    def on_vertex_visited(
        self,
        vertex_id: int,
        out_neighbors: np.ndarray,
        pick_neighbor: Optional[Callable[[], int]] = None
    ) -> None:
        """Called for every scheduled vertex of the current window."""

    @abstractmethod
    def on_window_end(self, interval: VertexInterval) -> None:
        """Called after the last vertex of the window."""

    def on_iteration_end(self, iteration: int) -> None:
        """Called after the last window of every iteration."""

    def on_run_end(self) -> None:
        """Called once after the last iteration."""
