"""Serialized event delivery."""

from queue import Queue
from threading import Thread, current_thread
from typing import Callable, Optional

from bleconnector.interfaces.ble.constants import EVENT_THREAD_JOIN_TIMEOUT, logger

_STOP = object()


class DeferredExecution:
    """A thread that accepts closures to run, and runs them as they are received.

    Radio callbacks and timer firings are all queued here, which serializes
    every controller state change onto one thread. A closure that raises is
    logged and the queue keeps draining.
    """

    def __init__(self, name: str = "BLEControllerEvents"):
        self.queue: "Queue[object]" = Queue()
        self._closed = False
        self.thread = Thread(target=self._run, name=name, daemon=True)
        self.thread.start()

    def queueWork(self, runnable: Optional[Callable[[], None]]) -> None:
        """Queue `runnable` for execution on the event thread; ignored once closed."""
        if runnable is None or self._closed:
            return
        self.queue.put(runnable)

    def close(self, timeout: Optional[float] = EVENT_THREAD_JOIN_TIMEOUT) -> None:
        """Run already-queued work, then stop the event thread."""
        if self._closed:
            return
        self._closed = True
        self.queue.put(_STOP)
        if self.thread is not current_thread():
            self.thread.join(timeout=timeout)

    def _run(self) -> None:
        while True:
            work = self.queue.get()
            if work is _STOP:
                return
            try:
                work()  # type: ignore[operator]
            except Exception:  # noqa: BLE001
                logger.exception("Unexpected error in deferred execution %s", work)
