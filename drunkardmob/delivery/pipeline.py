"""
Delivery Pipeline Module.

This module ships grabbed walk buckets from the traversal thread to the
companion (the aggregator) on a background thread.

Key Concept:
    The traversal thread only enqueues batches it already removed from
    the walk store, so the queue is the only synchronization point. The
    sender coalesces walks into large arrays before each remote call, and
    the traversal thread holds back while the queue is full or too many
    walks are waiting to be delivered.
"""

import logging
import queue
import threading
from typing import Dict, Optional

import numpy as np

from .batch import DeliveryBatch

logger = logging.getLogger(__name__)


class DeliveryPipeline:
    """
    Bounded asynchronous hand-off to the companion.

    The queue holds at most max_queued_batches batches and consume()
    blocks the traversal thread while it is full. A single worker thread
    drains the queue. On finish() the worker keeps draining until the
    queue is empty and then flushes the last partial array, so every
    enqueued batch is attempted exactly once. A failed remote call is
    logged and its walks are dropped.

    Walks that landed on their own source vertex are filtered out before
    sending.

    Example:
        >>> pipeline = DeliveryPipeline(companion, walk_manager)
        >>> walk_manager.set_bucket_consumer(pipeline)
        >>> pipeline.start()
        >>> ...  # traversal, calling pipeline.wait_for_capacity() per vertex
        >>> pipeline.finish()
    """

    def __init__(
        self,
        companion,
        walk_manager,
        batch_size: int = 256 * 1024,
        poll_interval: float = 1.0,
        backlog_divisor: int = 40,
        admission_poll: float = 2.0,
        max_queued_batches: Optional[int] = None
    ):
        """
        Initialize delivery pipeline.

        Args:
            companion: Aggregator client with process_walks(walks, vertices)
            walk_manager: Walk store, used to look up source vertices
            batch_size: Number of walks sent per remote call
            poll_interval: Seconds the sender waits on an empty queue
            backlog_divisor: Admission limit is total_walks // backlog_divisor
            admission_poll: Seconds between admission re-checks
            max_queued_batches: Queue capacity in batches (None = admission_limit(), at least 1)
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if backlog_divisor < 1:
            raise ValueError(f"backlog_divisor must be >= 1, got {backlog_divisor}")
        if max_queued_batches is not None and max_queued_batches < 1:
            raise ValueError(f"max_queued_batches must be >= 1, got {max_queued_batches}")

        self.companion = companion
        self.walk_manager = walk_manager
        self.batch_size = batch_size
        self.poll_interval = poll_interval
        self.backlog_divisor = backlog_divisor
        self.admission_poll = admission_poll

        if max_queued_batches is None:
            max_queued_batches = max(1, self.admission_limit())
        self.max_queued_batches = max_queued_batches

        self._queue: queue.Queue = queue.Queue(maxsize=max_queued_batches)
        self._finished = threading.Event()
        self._pending_cond = threading.Condition()
        self._pending = 0
        self._thread: Optional[threading.Thread] = None

        # Coalescing buffers, owned by the sender thread
        self._walk_buf = np.empty(batch_size, dtype=np.int64)
        self._vertex_buf = np.empty(batch_size, dtype=np.int64)
        self._buf_len = 0

        # Statistics
        self.batches_received = 0
        self.walks_submitted = 0
        self.walks_sent = 0
        self.ignored_self_landings = 0
        self.remote_calls = 0
        self.failed_calls = 0
        self.walks_dropped = 0
        self.admission_waits = 0
        self.max_pending_at_admission = 0
        self.producer_blocks = 0

    def start(self) -> None:
        """Start the sender thread."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, daemon=True, name="walk-delivery")
        self._thread.start()

    @property
    def pending_walks(self) -> int:
        """Walks submitted but not yet taken off the queue by the sender."""
        with self._pending_cond:
            return self._pending

    def admission_limit(self) -> int:
        return self.walk_manager.total_walks() // self.backlog_divisor

    def consume(self, batch: DeliveryBatch) -> None:
        """
        Hand a grabbed bucket over to the sender.

        Called by the walk store from the traversal thread. The batch is
        owned by the pipeline from here on. Blocks while the queue holds
        max_queued_batches batches and the sender has not taken one.
        """
        if self._finished.is_set():
            raise RuntimeError("Delivery pipeline is finished")
        if self._thread is None and self._queue.full():
            # No sender running: make room on the calling thread
            self._drain(flush=False)

        with self._pending_cond:
            self._pending += len(batch)
            self.walks_submitted += len(batch)
        if self._queue.full():
            self.producer_blocks += 1
        self._queue.put(batch)

    def wait_for_capacity(self) -> None:
        """
        Admission control for the traversal thread.

        Blocks while more than total_walks // backlog_divisor walks are
        waiting for delivery. The condition is re-checked whenever the
        sender takes a batch and at least every admission_poll seconds.
        """
        limit = self.admission_limit()
        if self._thread is None and self.pending_walks > limit:
            # No sender running: deliver on the calling thread
            self._drain(flush=False)

        with self._pending_cond:
            if self._pending > limit:
                self.admission_waits += 1
            while self._pending > limit:
                logger.info("Too many walks waiting for delivery: %d", self._pending)
                self._pending_cond.wait(timeout=self.admission_poll)
            self.max_pending_at_admission = max(self.max_pending_at_admission, self._pending)

    def finish(self) -> None:
        """Drain the queue, flush the last partial array and stop the sender."""
        self._finished.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        else:
            # Never started: drain on the calling thread
            self._drain()
        logger.info("Delivery finished: %s", self.get_statistics())

    def _run(self) -> None:
        counter = 0
        while not (self._finished.is_set() and self._queue.empty()):
            try:
                batch = self._queue.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            self._handle(batch)
            if counter % 1000 == 0:
                logger.info("Ignore count: %d; pending=%d", self.ignored_self_landings, self.pending_walks)
            counter += 1
        self._flush()

    def _drain(self, flush: bool = True) -> None:
        while True:
            try:
                batch = self._queue.get_nowait()
            except queue.Empty:
                break
            self._handle(batch)
        if flush:
            self._flush()

    def _handle(self, batch: DeliveryBatch) -> None:
        with self._pending_cond:
            self._pending -= len(batch)
            self.batches_received += 1
            self._pending_cond.notify_all()

        vertices = batch.vertices()
        sources = batch.source_indices

        # Landing on the own source vertex is not reported
        keep = self.walk_manager.source_vertices[sources] != vertices
        self.ignored_self_landings += int(keep.size - np.count_nonzero(keep))
        sources = sources[keep]
        vertices = vertices[keep]

        pos = 0
        while pos < sources.size:
            n = min(self.batch_size - self._buf_len, sources.size - pos)
            self._walk_buf[self._buf_len:self._buf_len + n] = sources[pos:pos + n]
            self._vertex_buf[self._buf_len:self._buf_len + n] = vertices[pos:pos + n]
            self._buf_len += n
            pos += n
            if self._buf_len >= self.batch_size:
                self._flush()

    def _flush(self) -> None:
        if self._buf_len == 0:
            return
        walks = self._walk_buf[:self._buf_len].copy()
        vertices = self._vertex_buf[:self._buf_len].copy()
        self._buf_len = 0
        self._send(walks, vertices)

    def _send(self, walks: np.ndarray, vertices: np.ndarray) -> None:
        self.remote_calls += 1
        try:
            self.companion.process_walks(walks, vertices)
            self.walks_sent += int(walks.size)
        except Exception:
            self.failed_calls += 1
            self.walks_dropped += int(walks.size)
            logger.exception("Failed to deliver %d walks, dropping batch", walks.size)

    def get_statistics(self) -> Dict:
        """
        Get delivery statistics.

        Returns:
            Dictionary with counters of the pipeline
        """
        return {
            'batches_received': self.batches_received,
            'walks_submitted': self.walks_submitted,
            'walks_sent': self.walks_sent,
            'ignored_self_landings': self.ignored_self_landings,
            'remote_calls': self.remote_calls,
            'failed_calls': self.failed_calls,
            'walks_dropped': self.walks_dropped,
            'pending_walks': self.pending_walks,
            'admission_waits': self.admission_waits,
            'max_pending_at_admission': self.max_pending_at_admission,
            'max_queued_batches': self.max_queued_batches,
            'producer_blocks': self.producer_blocks,
        }

    def __repr__(self) -> str:
        return (f"DeliveryPipeline(batch_size={self.batch_size}, "
                f"pending={self.pending_walks}, sent={self.walks_sent})")
