"""
Tests for the bounded worker-pool layer.

Tests cellmeasurement/processing/parallel.py.
"""

import sys
import threading
import time
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from cellmeasurement.processing.parallel import parallel_map, validate_worker_count


class TestParallelMap:
    """Tests for parallel_map."""

    def test_preserves_order_with_uneven_durations(self):
        def slow_square(x):
            time.sleep(0.01 * (5 - x % 5))
            return x * x

        assert parallel_map(list(range(20)), slow_square, n_workers=4) == [x * x for x in range(20)]

    def test_single_worker_runs_in_calling_thread(self):
        caller = threading.get_ident()
        threads = parallel_map([1, 2, 3], lambda _: threading.get_ident(), n_workers=1)
        assert threads == [caller] * 3

    def test_multiple_workers_use_pool(self):
        barrier = threading.Barrier(2, timeout=5)

        def wait(_):
            barrier.wait()
            return threading.get_ident()

        threads = parallel_map([0, 1], wait, n_workers=2)
        assert len(set(threads)) == 2

    def test_identical_results_for_any_worker_count(self):
        items = list(range(50))
        expected = parallel_map(items, lambda x: x + 1, n_workers=1)
        for n in (2, 3, 8, 100):
            assert parallel_map(items, lambda x: x + 1, n_workers=n) == expected

    def test_empty_input(self):
        assert parallel_map([], lambda x: x, n_workers=4) == []

    def test_exceptions_propagate(self):
        def boom(x):
            if x == 3:
                raise RuntimeError("boom")
            return x

        with pytest.raises(RuntimeError, match="boom"):
            parallel_map(list(range(6)), boom, n_workers=3)

    @pytest.mark.parametrize("n_workers", [0, -1])
    def test_invalid_worker_count(self, n_workers):
        with pytest.raises(ValueError):
            parallel_map([1], lambda x: x, n_workers=n_workers)

    def test_progress_bar(self):
        assert parallel_map([1, 2, 3], lambda x: x, n_workers=2, show_progress=True, desc="test") == [1, 2, 3]


class TestValidateWorkerCount:
    def test_valid(self):
        assert validate_worker_count(4) == 4

    @pytest.mark.parametrize("value", [0, 1.5, "2", True, None])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            validate_worker_count(value)
