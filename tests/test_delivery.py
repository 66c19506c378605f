"""
Tests for Delivery Module.

Tests batching, self-landing filtering, failure handling, draining on
shutdown and admission control.
"""

import pytest
import threading
import time
import numpy as np
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from drunkardmob.delivery import DeliveryBatch, DeliveryPipeline
from drunkardmob.walks import WalkManager


class FakeCompanion:
    """Companion that records process_walks calls, optionally failing or slow."""

    def __init__(self, fail_calls=(), delay=0.0):
        self.fail_calls = set(fail_calls)
        self.delay = delay
        self.calls = []
        self.attempts = 0
        self._lock = threading.Lock()

    def process_walks(self, walks, vertices):
        with self._lock:
            attempt = self.attempts
            self.attempts += 1
        if self.delay:
            time.sleep(self.delay)
        if attempt in self.fail_calls:
            raise ConnectionError("companion unavailable")
        with self._lock:
            self.calls.append((np.asarray(walks).tolist(), np.asarray(vertices).tolist()))

    def delivered(self):
        return sorted((w, v) for walks, vertices in self.calls for w, v in zip(walks, vertices))


def make_batch(first_vertex, sources, offsets):
    return DeliveryBatch(first_vertex, np.asarray(sources, dtype=np.int64),
                         np.asarray(offsets, dtype=np.int64))


@pytest.fixture
def manager():
    """Manager with sources at vertices 10 and 20, 5 walks each."""
    manager = WalkManager(num_vertices=256, num_sources=2)
    manager.add_walk_batch(10, 5)
    manager.add_walk_batch(20, 5)
    manager.initialize_walks()
    return manager


class TestBatching:
    """Tests for filtering and coalescing."""

    def test_self_landings_filtered(self, manager):
        """Test that walks at their own source are not sent."""
        companion = FakeCompanion()
        pipeline = DeliveryPipeline(companion, manager, poll_interval=0.01)

        pipeline.consume(make_batch(0, [0, 0, 1, 1], [10, 11, 20, 10]))
        pipeline.finish()

        assert companion.delivered() == [(0, 11), (1, 10)]
        assert pipeline.ignored_self_landings == 2
        assert pipeline.walks_sent == 2

    def test_block_base_added(self, manager):
        """Test that offsets are turned into absolute vertices."""
        companion = FakeCompanion()
        pipeline = DeliveryPipeline(companion, manager, poll_interval=0.01)

        pipeline.consume(make_batch(128, [0, 1], [0, 5]))
        pipeline.finish()

        assert companion.delivered() == [(0, 128), (1, 133)]

    def test_coalesced_into_fixed_size_calls(self, manager):
        """Test that walks are sent in arrays of batch_size plus a trailing flush."""
        companion = FakeCompanion()
        pipeline = DeliveryPipeline(companion, manager, batch_size=2, poll_interval=0.01)

        pipeline.consume(make_batch(0, [0, 0, 0], [1, 2, 3]))
        pipeline.consume(make_batch(0, [1, 1], [4, 5]))
        pipeline.finish()

        assert [len(walks) for walks, _ in companion.calls] == [2, 2, 1]
        assert pipeline.remote_calls == 3

    def test_no_call_for_empty_tail(self, manager):
        """Test that nothing is sent when every walk was filtered."""
        companion = FakeCompanion()
        pipeline = DeliveryPipeline(companion, manager, poll_interval=0.01)

        pipeline.consume(make_batch(0, [0, 1], [10, 20]))
        pipeline.finish()

        assert companion.attempts == 0


class TestFailures:
    """Tests for remote failures."""

    def test_failed_call_drops_batch(self, manager):
        """Test that a failed call is dropped and not retried."""
        companion = FakeCompanion(fail_calls={0})
        pipeline = DeliveryPipeline(companion, manager, batch_size=2, poll_interval=0.01)

        pipeline.consume(make_batch(0, [0, 0, 0], [1, 2, 3]))
        pipeline.finish()

        assert companion.attempts == 2
        assert pipeline.failed_calls == 1
        assert pipeline.walks_dropped == 2
        assert pipeline.walks_sent == 1
        assert companion.delivered() == [(0, 3)]

    def test_failure_does_not_stop_sender(self, manager):
        """Test that the sender thread survives a failing call."""
        companion = FakeCompanion(fail_calls={0})
        pipeline = DeliveryPipeline(companion, manager, batch_size=1, poll_interval=0.01)
        pipeline.start()

        pipeline.consume(make_batch(0, [0], [1]))
        pipeline.consume(make_batch(0, [1], [2]))
        pipeline.finish()

        assert companion.delivered() == [(1, 2)]


class TestShutdown:
    """Tests for drain-to-completion."""

    def test_finish_drains_queue(self, manager):
        """Test that every enqueued batch is delivered before finish returns."""
        companion = FakeCompanion(delay=0.005)
        pipeline = DeliveryPipeline(companion, manager, batch_size=3, poll_interval=0.01)
        pipeline.start()

        expected = []
        for i in range(20):
            pipeline.consume(make_batch(0, [i % 2], [30 + i]))
            expected.append((i % 2, 30 + i))
        pipeline.finish()

        assert companion.delivered() == sorted(expected)
        assert pipeline.pending_walks == 0
        assert pipeline.batches_received == 20

    def test_consume_after_finish_fails(self, manager):
        """Test that a finished pipeline rejects new batches."""
        pipeline = DeliveryPipeline(FakeCompanion(), manager, poll_interval=0.01)
        pipeline.finish()

        with pytest.raises(RuntimeError):
            pipeline.consume(make_batch(0, [0], [1]))


class GatedCompanion(FakeCompanion):
    """Companion whose calls block until released."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def process_walks(self, walks, vertices):
        self.entered.set()
        assert self.release.wait(timeout=5.0)
        super().process_walks(walks, vertices)


class TestBoundedQueue:
    """Tests for the queue capacity."""

    def test_default_capacity(self, manager):
        """Test that the capacity follows the admission limit."""
        assert DeliveryPipeline(FakeCompanion(), manager, backlog_divisor=2).max_queued_batches == 5
        assert DeliveryPipeline(FakeCompanion(), manager).max_queued_batches == 1

    def test_invalid_capacity(self, manager):
        """Test capacity validation."""
        with pytest.raises(ValueError):
            DeliveryPipeline(FakeCompanion(), manager, max_queued_batches=0)

    def test_consume_blocks_while_full(self, manager):
        """Test that the producer waits while the queue is full."""
        companion = GatedCompanion()
        pipeline = DeliveryPipeline(
            companion, manager, batch_size=1, poll_interval=0.01, max_queued_batches=1
        )
        pipeline.start()

        # Sender takes the first batch and stalls inside the remote call
        pipeline.consume(make_batch(0, [0], [50]))
        assert companion.entered.wait(timeout=5.0)

        # Second batch fills the queue
        pipeline.consume(make_batch(0, [0], [51]))

        producer = threading.Thread(target=pipeline.consume, args=(make_batch(0, [0], [52]),))
        producer.start()
        producer.join(timeout=0.2)
        assert producer.is_alive()
        assert pipeline.producer_blocks == 1

        companion.release.set()
        producer.join(timeout=5.0)
        assert not producer.is_alive()

        pipeline.finish()
        assert companion.delivered() == [(0, 50), (0, 51), (0, 52)]

    def test_full_queue_without_sender_drains_inline(self, manager):
        """Test that a full queue is drained on the caller when no sender runs."""
        companion = FakeCompanion()
        pipeline = DeliveryPipeline(companion, manager, batch_size=1, max_queued_batches=1)

        for offset in (60, 61, 62):
            pipeline.consume(make_batch(0, [1], [offset]))

        assert companion.delivered() == [(1, 60), (1, 61)]
        assert pipeline.pending_walks == 1

        pipeline.finish()
        assert companion.delivered() == [(1, 60), (1, 61), (1, 62)]


class TestAdmissionControl:
    """Tests for backpressure on the traversal thread."""

    def test_limit(self, manager):
        """Test the admission limit is total_walks // backlog_divisor."""
        pipeline = DeliveryPipeline(FakeCompanion(), manager, backlog_divisor=4)

        assert pipeline.admission_limit() == 2

    def test_waits_for_slow_sender(self, manager):
        """Test that the producer never proceeds over the limit."""
        companion = FakeCompanion(delay=0.02)
        pipeline = DeliveryPipeline(
            companion, manager, batch_size=1, poll_interval=0.01,
            backlog_divisor=5, admission_poll=0.01
        )
        pipeline.start()
        limit = pipeline.admission_limit()

        for i in range(10):
            pipeline.consume(make_batch(0, [0, 0, 0, 0], [40, 41, 42, 43]))
            pipeline.wait_for_capacity()
            assert pipeline.pending_walks <= limit

        pipeline.finish()

        assert pipeline.admission_waits > 0
        assert pipeline.max_pending_at_admission <= limit
        assert len(companion.delivered()) == 40

    def test_without_sender_drains_inline(self, manager):
        """Test that admission delivers on the caller when no sender runs."""
        companion = FakeCompanion()
        pipeline = DeliveryPipeline(companion, manager, batch_size=1, backlog_divisor=40)

        pipeline.consume(make_batch(0, [0, 1], [40, 41]))
        pipeline.wait_for_capacity()

        assert pipeline.pending_walks == 0
        assert companion.delivered() == [(0, 40), (1, 41)]

    def test_statistics(self, manager):
        """Test statistics keys."""
        pipeline = DeliveryPipeline(FakeCompanion(), manager)
        stats = pipeline.get_statistics()

        for key in ('walks_submitted', 'walks_sent', 'ignored_self_landings',
                    'failed_calls', 'walks_dropped', 'pending_walks', 'admission_waits'):
            assert key in stats


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
