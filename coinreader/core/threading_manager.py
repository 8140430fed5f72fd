"""Worker pools for live-frame processing, calibration and per-slot fan-out."""

import concurrent.futures
import logging
import threading
import time
from collections import deque
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class WorkerPool:
    """Named executor with success/error callbacks and simple statistics.

    A pool with ``max_workers=1`` runs submissions strictly in order, which is
    how the live session keeps all stabilizer mutations on one thread.
    """

    def __init__(self, name: str, max_workers: int = 1):
        self.name = name
        self.max_workers = max_workers
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._pending: "set[concurrent.futures.Future]" = set()
        self._idle = threading.Condition(self._lock)
        self._completed_tasks = 0
        self._failed_tasks = 0
        self._durations = deque(maxlen=100)
        self._shutdown = False

    def submit(self, func: Callable[..., R], *args,
               callback: Optional[Callable[[R], None]] = None,
               error_callback: Optional[Callable[[BaseException], None]] = None,
               **kwargs) -> concurrent.futures.Future:
        if self._shutdown:
            raise RuntimeError(f"Worker pool {self.name} is shutting down")

        def run():
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                self._record(start, failed=True)
                logger.exception(f"Task failed in pool {self.name}: {e}")
                if error_callback:
                    error_callback(e)
                raise
            self._record(start, failed=False)
            if callback:
                callback(result)
            return result

        with self._lock:
            future = self._executor.submit(run)
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return future

    def _record(self, start: float, failed: bool) -> None:
        with self._lock:
            self._durations.append(time.perf_counter() - start)
            if failed:
                self._failed_tasks += 1
            else:
                self._completed_tasks += 1

    def _discard(self, future: concurrent.futures.Future) -> None:
        with self._lock:
            self._pending.discard(future)
            if not self._pending:
                self._idle.notify_all()

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every submitted task finished. False on timeout."""
        with self._lock:
            return self._idle.wait_for(lambda: not self._pending, timeout=timeout)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            durations = list(self._durations)
            return {
                'name': self.name,
                'pending': len(self._pending),
                'completed_tasks': self._completed_tasks,
                'failed_tasks': self._failed_tasks,
                'avg_task_seconds': sum(durations) / len(durations) if durations else 0.0,
            }

    def shutdown(self, wait: bool = True) -> None:
        self._shutdown = True
        self._executor.shutdown(wait=wait)


def fan_out(func: Callable[[T], R], items: Iterable[T], max_workers: int = 4) -> List[R]:
    """Apply ``func`` to every item in parallel; results keep input order.

    Exceptions from ``func`` propagate to the caller.
    """
    items = list(items)
    if not items:
        return []
    if max_workers <= 1 or len(items) == 1:
        return [func(item) for item in items]
    with concurrent.futures.ThreadPoolExecutor(
            max_workers=min(max_workers, len(items)), thread_name_prefix="fan-out") as executor:
        return list(executor.map(func, items))
