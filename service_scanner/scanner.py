from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Optional, Set

from .events import EventSink, Progress
from .models import ScanTarget

logger = logging.getLogger(__name__)

# How often the fan-in loop re-checks the cancellation flag while every
# in-flight probe is still blocked on its socket.
CANCEL_POLL_INTERVAL = 0.1


class ScanRun:
    """
    In-flight state of one scan: resolved address, completion counter,
    cancellation flag and the worker pool.

    The counter and the flag are the only things worker tasks share.
    """

    def __init__(self, target: ScanTarget):
        self.target = target
        self.ip = ""
        self.hostname = ""
        self.total = target.total_ports
        self.pool: Optional[ThreadPoolExecutor] = None

        self._completed = 0
        self._lock = threading.RLock()
        self._cancelled = threading.Event()
        self._finished = threading.Event()

    @property
    def completed(self) -> int:
        with self._lock:
            return self._completed

    @property
    def progress(self) -> float:
        return self.completed / self.total if self.total else 0.0

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    def cancel(self) -> None:
        # One-way: nothing ever clears the flag.
        self._cancelled.set()

    def advance(self, sink: EventSink) -> int:
        """
        Count one finished port and publish progress.
        Publishing under the lock keeps progress events in order; the lock is
        reentrant so a sink may read `completed` or `progress`.
        """
        with self._lock:
            self._completed += 1
            completed = self._completed
            sink(Progress(completed, self.total))
        return completed

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._finished.wait(timeout)

    def shutdown(self) -> None:
        """Stop the pool: queued tasks are dropped, running ones finish."""
        if self.pool is not None:
            self.pool.shutdown(wait=True, cancel_futures=True)
        self._finished.set()


def fan_out(run: ScanRun, task: Callable[[int], None]) -> None:
    """
    Run `task(port)` once for every port of the run on a bounded pool.

    Submission goes through a bounded window so a full 1-65535 sweep never
    creates all of its futures at once. After cancellation nothing new is
    submitted, queued tasks are discarded and this returns as soon as the
    tasks already running have finished.
    """
    workers = run.target.workers
    pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scan-worker")
    run.pool = pool

    ports = iter(run.target.ports)
    max_pending = max(workers * 4, 100)
    pending: Set[Future] = set()

    def submit_next() -> bool:
        if run.cancelled:
            return False
        port = next(ports, None)
        if port is None:
            return False
        pending.add(pool.submit(task, port))
        return True

    # Prime the queue
    while len(pending) < max_pending and submit_next():
        pass

    while pending:
        done, pending = wait(pending, timeout=CANCEL_POLL_INTERVAL, return_when=FIRST_COMPLETED)
        for fut in done:
            if not fut.cancelled() and fut.exception() is not None:
                logger.debug("Scan task raised: %r", fut.exception())

        if run.cancelled:
            for fut in pending:
                fut.cancel()
            pending = {fut for fut in pending if not fut.cancelled()}
            continue

        # Refill queue
        while len(pending) < max_pending and submit_next():
            pass
