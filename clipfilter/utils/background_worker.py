"""
Background Worker Utility
=========================

A single persistent worker thread fed from a FIFO task queue. Filter runs are
handed to it so the calling thread (a UI loop or the CLI) stays free while a
network call is in flight.

Key Features:
-------------
- Single Persistent Thread: One worker thread handles all submitted tasks
- Strictly Sequential: Tasks run one at a time in submission order
- Graceful Shutdown: Unblocks the queue and joins the thread on exit

Usage:
------
    >>> from clipfilter.utils.background_worker import BackgroundWorker
    >>>
    >>> worker = BackgroundWorker(name="FilterWorker")
    >>> worker.submit(some_function, arg1, kwarg1=value)
    >>> worker.shutdown()

Author: clipfilter Project
"""

import logging
import queue
import threading
from typing import Callable


class BackgroundWorker:
    """
    Single-thread task executor with queue management.

    Attributes:
        name: Identifier for logging purposes
        _queue: Thread-safe task queue
        _thread: The persistent worker thread
        _running: Flag to signal shutdown
    """

    def __init__(self, name: str = "BackgroundWorker"):
        self.name = name
        self.logger = logging.getLogger(__name__)

        self._queue: queue.Queue = queue.Queue()
        self._running = True

        self._thread = threading.Thread(
            target=self._process_queue,
            name=f"{name}-Thread",
            daemon=True
        )
        self._thread.start()
        self.logger.debug(f"BackgroundWorker '{name}' started")

    def submit(self, task: Callable, *args, **kwargs) -> None:
        """
        Submit a task to the work queue.

        Args:
            task: The callable to execute
            *args: Positional arguments to pass to the task
            **kwargs: Keyword arguments to pass to the task

        Raises:
            RuntimeError: If the worker has been shut down
        """
        if not self._running:
            raise RuntimeError(f"Worker '{self.name}' is shut down")
        self._queue.put((task, args, kwargs))

    def join(self) -> None:
        """Block until every queued task has finished."""
        self._queue.join()

    def shutdown(self, timeout: float = 2.0) -> None:
        """
        Gracefully shut down the worker.

        A task that is already running is allowed to finish; there is no
        mid-flight cancellation.

        Args:
            timeout: Maximum seconds to wait for the thread to join
        """
        if not self._running:
            return

        self.logger.debug(f"Worker '{self.name}' shutting down...")
        self._running = False

        # Sentinel unblocks queue.get() if it's waiting
        self._queue.put(None)

        if self._thread.is_alive():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                self.logger.warning(f"Worker '{self.name}' thread did not terminate within {timeout}s")

        self.logger.debug(f"Worker '{self.name}' shutdown complete")

    def _process_queue(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                self._queue.task_done()
                break

            task, args, kwargs = item
            try:
                task(*args, **kwargs)
            except Exception as e:
                self.logger.error(
                    f"Worker '{self.name}' task failed: {type(e).__name__}: {e}",
                    exc_info=True
                )
            finally:
                self._queue.task_done()

    def is_alive(self) -> bool:
        """Check if the worker thread is still running."""
        return self._thread.is_alive()
