"""Unit tests for worker pools and fan-out."""
import threading

import pytest

from coinreader.core.threading_manager import WorkerPool, fan_out


class TestWorkerPool:

    def test_submit_returns_result_and_calls_callback(self):
        pool = WorkerPool("test", max_workers=1)
        received = []
        try:
            future = pool.submit(lambda a, b: a + b, 2, 3, callback=received.append)
            assert future.result(timeout=5) == 5
            assert pool.wait_until_idle(timeout=5)
            assert received == [5]
            assert pool.get_stats()["completed_tasks"] == 1
        finally:
            pool.shutdown()

    def test_failures_reach_error_callback_and_future(self):
        pool = WorkerPool("test", max_workers=1)
        errors = []

        def boom():
            raise ValueError("bad frame")

        try:
            future = pool.submit(boom, error_callback=errors.append)
            with pytest.raises(ValueError):
                future.result(timeout=5)
            assert pool.wait_until_idle(timeout=5)
            assert isinstance(errors[0], ValueError)
            assert pool.get_stats()["failed_tasks"] == 1
        finally:
            pool.shutdown()

    def test_wait_until_idle_times_out_while_busy(self):
        pool = WorkerPool("test", max_workers=1)
        gate = threading.Event()
        try:
            pool.submit(gate.wait, 5)
            assert not pool.wait_until_idle(timeout=0.05)
            gate.set()
            assert pool.wait_until_idle(timeout=5)
        finally:
            pool.shutdown()

    def test_submit_after_shutdown_raises(self):
        pool = WorkerPool("test")
        pool.shutdown()
        with pytest.raises(RuntimeError):
            pool.submit(lambda: None)


class TestFanOut:

    def test_keeps_input_order(self):
        assert fan_out(lambda x: x * x, [3, 1, 2], max_workers=3) == [9, 1, 4]

    def test_serial_and_empty(self):
        assert fan_out(lambda x: x + 1, [1, 2], max_workers=1) == [2, 3]
        assert fan_out(lambda x: x, [], max_workers=4) == []

    def test_exceptions_propagate(self):
        def fail(x):
            raise KeyError(x)

        with pytest.raises(KeyError):
            fan_out(fail, [1, 2, 3], max_workers=2)
