"""
Ограниченный пул воркеров.

- фиксированное число потоков + фиксированная ёмкость очереди ожидания
- submit блокируется не дольше submit_timeout_sec, затем PoolSaturatedError
- задача с ключом, уже находящимся в пуле, повторно не ставится
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from vod_pipeline.common.errors import PoolSaturatedError
from vod_pipeline.common.logging import get_project_logger
from vod_pipeline.common.metrics import WORKER_POOL_INFLIGHT

log = get_project_logger()


class BoundedWorkerPool:
    def __init__(
        self,
        *,
        workers: int,
        queue_capacity: int,
        submit_timeout_sec: float,
        name: str = "video-worker",
    ) -> None:
        self.workers = max(1, int(workers))
        self.queue_capacity = max(0, int(queue_capacity))
        self.submit_timeout_sec = max(0.0, float(submit_timeout_sec))
        self._slots = threading.BoundedSemaphore(self.workers + self.queue_capacity)
        self._executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix=name)
        self._inflight: set[str] = set()
        self._lock = threading.Lock()

    def inflight_keys(self) -> set[str]:
        with self._lock:
            return set(self._inflight)

    def submit(self, key: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future | None:
        """
        Ставит fn в пул. None, если ключ уже в пуле (дубликат).
        """
        with self._lock:
            if key in self._inflight:
                log.info("worker_pool_duplicate_skipped", extra={"payload": {"key": key}})
                return None
            self._inflight.add(key)

        if not self._slots.acquire(timeout=self.submit_timeout_sec):
            with self._lock:
                self._inflight.discard(key)
            raise PoolSaturatedError(
                details={"key": key, "capacity": self.workers + self.queue_capacity}
            )

        WORKER_POOL_INFLIGHT.inc()
        try:
            future = self._executor.submit(fn, *args, **kwargs)
        except RuntimeError:
            self._release(key)
            raise
        future.add_done_callback(lambda _f: self._release(key))
        return future

    def _release(self, key: str) -> None:
        with self._lock:
            self._inflight.discard(key)
        self._slots.release()
        WORKER_POOL_INFLIGHT.dec()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
