"""
Detached execution of scheduler-triggered runs.

The HTTP request that triggers a cron run returns as soon as the run is
queued. The run itself executes on a single worker thread, so cron runs
never overlap each other; its outcome reaches the run ledger through
execute_run_detached and the log through the completion callback.
"""
from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait

from news_monitor.logging_utils import log_error, log_event


class RunQueue:
    def __init__(self, *, name: str = "check-rss"):
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._pending: set[Future] = set()
        self._lock = threading.Lock()

    def submit(self, fn, /, *args, **kwargs) -> Future:
        future = self._executor.submit(fn, *args, **kwargs)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._on_done)
        log_event("background_run_queued", task=getattr(fn, "__name__", repr(fn)))
        return future

    def _on_done(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)
        if future.cancelled():
            log_event("background_run_cancelled")
            return
        exc = future.exception()
        if exc is not None:
            log_error("background_run_crashed", error_type=type(exc).__name__, error=str(exc))
            return
        result = future.result()
        log_event("background_run_done", result=result)

    def join(self, timeout: float | None = None) -> bool:
        """Wait for everything queued so far. Returns False on timeout."""
        with self._lock:
            pending = list(self._pending)
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, *, wait_for_runs: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_runs)
