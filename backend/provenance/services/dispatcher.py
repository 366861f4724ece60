"""Background task dispatch for fire-and-forget protocol steps.

Attestation submission and certification run here, off the request thread.
A task that raises never reaches the caller that scheduled it: the failure is
logged with the task name and bound context, counted, and handed to the
optional ``on_error`` callback.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, Hashable, Optional, Set

import structlog

from provenance.logging_config import get_logger

logger = get_logger(__name__)

ErrorCallback = Callable[[str, BaseException], None]


class BackgroundDispatcher:
    def __init__(self, max_workers: int = 4, on_error: Optional[ErrorCallback] = None):
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix="provenance-bg"
        )
        self._on_error = on_error
        self._lock = threading.Lock()
        self._inflight: Set[Future] = set()
        self._keys: Dict[Hashable, int] = {}
        self.failed_tasks = 0

    def dispatch(
        self,
        task_name: str,
        fn: Callable[..., Any],
        *args: Any,
        context: Optional[Dict[str, Any]] = None,
        key: Optional[Hashable] = None,
        **kwargs: Any,
    ) -> Future:
        """Schedule ``fn(*args, **kwargs)`` and return immediately.

        ``key`` tags the task so ``is_pending(key)`` reports it until it has
        finished, whether still queued or running.
        """
        with self._lock:
            future = self._executor.submit(self._run, task_name, fn, args, kwargs, context or {})
            self._inflight.add(future)
            if key is not None:
                self._keys[key] = self._keys.get(key, 0) + 1
        future.add_done_callback(lambda f: self._forget(f, key))
        logger.debug("background_task_dispatched", task=task_name, **(context or {}))
        return future

    def is_pending(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._keys

    def _run(self, task_name, fn, args, kwargs, context):
        with structlog.contextvars.bound_contextvars(task=task_name, **context):
            try:
                return fn(*args, **kwargs)
            except Exception as exc:
                with self._lock:
                    self.failed_tasks += 1
                logger.exception("background_task_failed", error=str(exc))
                if self._on_error is not None:
                    try:
                        self._on_error(task_name, exc)
                    except Exception:
                        logger.exception("background_error_callback_failed")
                return None

    def _forget(self, future: Future, key: Optional[Hashable]) -> None:
        with self._lock:
            self._inflight.discard(future)
            if key is not None:
                remaining = self._keys.get(key, 0) - 1
                if remaining > 0:
                    self._keys[key] = remaining
                else:
                    self._keys.pop(key, None)

    @property
    def inflight(self) -> int:
        with self._lock:
            return len(self._inflight)

    def join(self, timeout: Optional[float] = None) -> bool:
        """Block until every task, including tasks scheduled by tasks, has finished.

        Returns False if ``timeout`` expired first.
        """
        while True:
            with self._lock:
                pending = set(self._inflight)
            if not pending:
                return True
            done, not_done = wait(pending, timeout=timeout)
            if not_done:
                return False

    def shutdown(self, wait_for_tasks: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_tasks)
