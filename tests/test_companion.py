"""
Tests for Companion Module.

Tests hit accumulation, avoid lists, concurrency, export and the
reconnecting client.
"""

import pytest
import threading
import numpy as np
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from drunkardmob.companion import LocalCompanion, ReconnectingCompanion


@pytest.fixture
def companion():
    """Companion with sources at vertices 10 and 20."""
    companion = LocalCompanion(buffer_limit=4)
    companion.set_sources([10, 20])
    return companion


class TestAccumulation:
    """Tests for process_walks."""

    @pytest.mark.parametrize('buffer_limit', [1, 4, 100000])
    def test_counts_independent_of_buffering(self, buffer_limit):
        """Test that counts do not depend on the buffer size."""
        companion = LocalCompanion(buffer_limit=buffer_limit)
        companion.set_sources([10, 20])

        companion.process_walks([0, 0, 1], [11, 12, 12])
        companion.process_walks([0, 1, 1], [11, 13, 12])

        d0 = companion.get_distribution(0)
        d1 = companion.get_distribution(1)
        assert d0.get_count(11) == 2
        assert d0.get_count(12) == 1
        assert d1.get_count(12) == 2
        assert d1.get_count(13) == 1
        assert companion.hits_received == 6

    def test_buffer_merged_at_limit(self, companion):
        """Test that hits stay buffered until the limit is reached."""
        companion.process_walks([0, 0, 0], [1, 2, 3])
        assert companion.get_statistics()['buffered_hits'] == 3

        companion.process_walks([0], [4])
        assert companion.get_statistics()['buffered_hits'] == 0

    def test_empty_call(self, companion):
        """Test that an empty call is a no-op."""
        companion.process_walks([], [])

        assert companion.hits_received == 0

    def test_length_mismatch(self, companion):
        """Test that walks and vertices must align."""
        with pytest.raises(ValueError):
            companion.process_walks([0, 1], [5])

    def test_unknown_source(self, companion):
        """Test that walk codes past the registered sources raise."""
        with pytest.raises(ValueError):
            companion.process_walks([2], [5])

    def test_set_sources_resets(self, companion):
        """Test that re-registering sources clears the accumulators."""
        companion.process_walks([0], [5])
        companion.set_sources([30])

        assert companion.num_sources() == 1
        assert companion.get_distribution(0).size() == 0


class TestAvoidList:
    """Tests for avoided vertices."""

    def test_avoid_before_hits(self, companion):
        """Test that hits on an avoided vertex are absorbed."""
        companion.set_avoid_list(0, [12, 11])
        companion.process_walks([0, 0, 0, 0], [11, 11, 12, 13])

        d = companion.get_distribution(0)
        assert d.get_count(11) == -1
        assert d.get_count(12) == -1
        assert d.get_count(13) == 1

    def test_avoid_after_hits(self, companion):
        """Test that an avoid list overrides earlier hits."""
        companion.process_walks([0, 0, 0], [11, 11, 13])
        companion.set_avoid_list(0, [11])

        d = companion.get_distribution(0)
        assert d.get_count(11) == -1
        assert d.get_count(13) == 1

    def test_avoid_only_affects_its_source(self, companion):
        """Test that avoid lists are per source."""
        companion.set_avoid_list(0, [11])
        companion.process_walks([1], [11])

        assert companion.get_distribution(1).get_count(11) == 1

    def test_bad_source_index(self, companion):
        """Test that an unknown source index raises."""
        with pytest.raises(ValueError):
            companion.set_avoid_list(5, [1])


class TestConcurrency:
    """Tests for concurrent process_walks calls."""

    def test_parallel_totals(self):
        """Test that concurrent callers lose no hits."""
        companion = LocalCompanion(buffer_limit=16)
        companion.set_sources([100, 200, 300])

        def worker(seed):
            rng = np.random.default_rng(seed)
            for _ in range(50):
                walks = rng.integers(0, 3, size=20)
                vertices = rng.integers(0, 10, size=20)
                companion.process_walks(walks, vertices)

        threads = [threading.Thread(target=worker, args=(s,)) for s in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        total = sum(companion.get_distribution(i).total_count() for i in range(3))
        assert total == 4 * 50 * 20
        assert companion.hits_received == 4 * 50 * 20


class TestOutput:
    """Tests for exporting distributions."""

    def test_output_file(self, companion, tmp_path):
        """Test the exported rows."""
        companion.set_avoid_list(0, [11])
        companion.process_walks([0, 0, 0, 0, 1], [11, 12, 12, 13, 14])

        path = companion.output_distributions(str(tmp_path / 'run'))

        assert path == tmp_path / 'run.distributions.tsv'
        lines = path.read_text().splitlines()
        assert lines[0] == 'source\tvertex\tcount'
        assert lines[1:] == ['10\t12\t2', '10\t13\t1', '20\t14\t1']

    def test_top_n(self, tmp_path):
        """Test that only top_n entries per source are written."""
        companion = LocalCompanion(top_n=1)
        companion.set_sources([10])
        companion.process_walks([0, 0, 0], [5, 6, 6])

        path = companion.output_distributions(str(tmp_path / 'out' / 'run'))

        assert path.read_text().splitlines()[1:] == ['10\t6\t2']


class FlakyCompanion:
    """Companion handle failing its first `failures` calls to process_walks."""

    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    def process_walks(self, walks, vertices):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("connection reset")


class TestReconnectingCompanion:
    """Tests for the reconnect-and-retry client."""

    def test_retry_succeeds(self):
        """Test that a single failure is retried on a fresh handle."""
        handles = []

        def connect():
            handle = FlakyCompanion(failures=1 if not handles else 0)
            handles.append(handle)
            return handle

        client = ReconnectingCompanion(connect, max_attempts=2)
        client.process_walks([0], [1])

        assert client.reconnects == 1
        assert len(handles) == 2
        assert handles[1].calls == 1

    def test_attempts_exhausted(self):
        """Test that the last error is raised after max_attempts."""
        client = ReconnectingCompanion(lambda: FlakyCompanion(failures=5), max_attempts=3)

        with pytest.raises(ConnectionError):
            client.process_walks([0], [1])
        assert client.reconnects == 2

    def test_concurrent_failures_reconnect_once(self):
        """Test that callers failing on the same handle share one new handle."""
        barrier = threading.Barrier(2, timeout=5.0)
        handles = []

        class SharedFailure(FlakyCompanion):
            def process_walks(self, walks, vertices):
                self.calls += 1
                if self.failures:
                    barrier.wait()
                    raise ConnectionError("connection reset")

        def connect():
            handle = SharedFailure(failures=0 if handles else 1)
            handles.append(handle)
            return handle

        client = ReconnectingCompanion(connect, max_attempts=2)
        errors = []

        def call():
            try:
                client.process_walks([0], [1])
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=call) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10.0)

        assert errors == []
        assert len(handles) == 2
        assert client.reconnects == 1
        assert handles[1].calls == 2

    def test_forwards_to_local(self, tmp_path):
        """Test that calls reach the wrapped companion."""
        local = LocalCompanion()
        client = ReconnectingCompanion(lambda: local)
        client.set_sources([10])
        client.set_avoid_list(0, [3])
        client.process_walks([0, 0], [3, 4])

        assert local.get_distribution(0).get_count(3) == -1
        assert local.get_distribution(0).get_count(4) == 1
        assert client.output_distributions(str(tmp_path / 'x')).exists()

    def test_invalid_attempts(self):
        """Test max_attempts validation."""
        with pytest.raises(ValueError):
            ReconnectingCompanion(LocalCompanion, max_attempts=0)


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
