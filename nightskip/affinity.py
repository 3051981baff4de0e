"""Marshal world mutations onto the host's primary thread."""
from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable, Deque, Optional

logger = logging.getLogger(__name__)


class MainThreadExecutor:
    """Runs tasks inline on the owning thread, queues them from any other.

    The host's main loop calls :meth:`run_pending` to drain queued tasks.
    Nothing here blocks waiting for a queued task to finish.
    """

    def __init__(self, thread_ident: Optional[int] = None) -> None:
        self._thread_ident = thread_ident if thread_ident is not None else threading.get_ident()
        self._lock = threading.Lock()
        self._queue: Deque[Callable[[], None]] = deque()

    @property
    def thread_ident(self) -> int:
        return self._thread_ident

    def is_primary_thread(self) -> bool:
        return threading.get_ident() == self._thread_ident

    def ensure_main(self, task: Callable[[], None]) -> None:
        if self.is_primary_thread():
            task()
            return
        with self._lock:
            self._queue.append(task)

    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    def run_pending(self) -> int:
        """Run queued tasks on the calling thread and return how many ran."""

        with self._lock:
            tasks = list(self._queue)
            self._queue.clear()
        for task in tasks:
            try:
                task()
            except Exception:
                logger.exception("Main-thread task %r failed", task)
        return len(tasks)


__all__ = ["MainThreadExecutor"]
