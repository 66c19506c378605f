"""
Reconnecting Companion Client.

Wraps a companion handle produced by a connect function. When a call
fails the handle is rebuilt and the call retried, up to max_attempts
calls in total. The last error is re-raised; the delivery pipeline then
drops the batch.

The sender thread and the traversal thread share one handle. A failed
handle is replaced once, however many callers saw it fail.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Sequence

from .base import DrunkardCompanion

logger = logging.getLogger(__name__)


class ReconnectingCompanion(DrunkardCompanion):
    """Companion proxy with a reconnect-and-retry policy."""

    def __init__(
        self,
        connect: Callable[[], DrunkardCompanion],
        max_attempts: int = 2,
        retry_delay: float = 0.0
    ):
        """
        Args:
            connect: Returns a fresh companion handle
            max_attempts: Total attempts per call
            retry_delay: Seconds to sleep before reconnecting
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self._connect = connect
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.reconnects = 0
        self._lock = threading.Lock()
        self._handle = connect()

    def _call(self, name: str, *args):
        for attempt in range(1, self.max_attempts + 1):
            with self._lock:
                handle = self._handle
            try:
                return getattr(handle, name)(*args)
            except Exception as e:
                if attempt == self.max_attempts:
                    raise
                logger.warning("Companion call %s failed (attempt %d/%d): %s; reconnecting",
                               name, attempt, self.max_attempts, e)
                if self.retry_delay > 0:
                    time.sleep(self.retry_delay)
                self._reconnect(handle)

    def _reconnect(self, failed) -> None:
        with self._lock:
            # Another caller may have replaced the failed handle already
            if self._handle is failed:
                self._handle = self._connect()
                self.reconnects += 1

    def set_sources(self, vertex_ids: Sequence[int]) -> None:
        self._call('set_sources', vertex_ids)

    def set_avoid_list(self, source_idx: int, vertex_ids: Sequence[int]) -> None:
        self._call('set_avoid_list', source_idx, vertex_ids)

    def process_walks(self, walks: Sequence[int], vertices: Sequence[int]) -> None:
        self._call('process_walks', walks, vertices)

    def output_distributions(self, path_prefix: str) -> Path:
        return self._call('output_distributions', path_prefix)
