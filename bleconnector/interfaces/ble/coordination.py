"""Thread coordination utilities for BLE operations."""

from threading import Event, RLock, Thread, current_thread
from typing import Callable, List, Optional

from bleconnector.interfaces.ble.constants import EVENT_THREAD_JOIN_TIMEOUT, logger


class ThreadCoordinator:
    """
    Simplified thread management for BLE operations.

    Tracks every helper thread the controller starts (timers, client close
    workers) so that teardown can join them in one place.
    """

    def __init__(self):
        """
        Create a ThreadCoordinator used to track and manage threads.

        Initializes:
            _lock (RLock): reentrant lock protecting internal state.
            _threads (List[Thread]): list of tracked Thread objects.
        """
        self._lock = RLock()
        self._threads: List[Thread] = []

    def create_thread(
        self, target, name: str, *, daemon: bool = True, args=(), kwargs=None
    ) -> Thread:
        """
        Create and register a Thread tracked by this coordinator without starting it.

        Finished threads are pruned from the registry on each call so that a
        long-running controller that re-arms timers does not accumulate them.

        Parameters:
            target (callable): Callable to be executed by the thread.
            name (str): Name assigned to the thread.
            daemon (bool): Whether the thread should run as a daemon.
            args (tuple): Positional arguments to pass to `target`.
            kwargs (dict | None): Keyword arguments to pass to `target`.

        Returns:
            Thread: The created Thread instance (tracked, not started).
        """
        with self._lock:
            self._threads = [
                thread
                for thread in self._threads
                if thread.is_alive() or thread.ident is None
            ]
            thread = Thread(
                target=target, name=name, daemon=daemon, args=args, kwargs=kwargs
            )
            self._threads.append(thread)
            return thread

    def start_thread(self, thread: Thread):
        """
        Start the given thread if it is tracked by this coordinator.
        """
        with self._lock:
            if thread in self._threads:
                thread.start()

    @property
    def thread_count(self) -> int:
        """Number of tracked threads that are still alive."""
        with self._lock:
            return sum(1 for thread in self._threads if thread.is_alive())

    def cleanup(self):
        """
        Join live tracked threads (excluding the current thread) and clear the registry.

        Threads are joined outside the lock to avoid deadlocks if they touch the
        coordinator while shutting down.
        """
        with self._lock:
            current = current_thread()
            threads_to_join = [
                thread
                for thread in self._threads
                if thread.is_alive() and thread is not current
            ]
            self._threads.clear()

        for thread in threads_to_join:
            thread.join(timeout=EVENT_THREAD_JOIN_TIMEOUT)
            if thread.is_alive():
                logger.warning(
                    "Thread %s did not exit within %.1fs",
                    thread.name,
                    EVENT_THREAD_JOIN_TIMEOUT,
                )


class RepeatingTimer:
    """
    Fire a callback repeatedly until cancelled.

    ``next_delay`` is consulted before every wait; returning ``None`` ends the
    timer. Each firing is handed to ``dispatch`` (for example the controller's
    event queue) so that callbacks run on the same serialized path as radio
    events.
    """

    def __init__(
        self,
        coordinator: ThreadCoordinator,
        name: str,
        next_delay: Callable[[], Optional[float]],
        callback: Callable[[], None],
        dispatch: Optional[Callable[[Callable[[], None]], None]] = None,
    ):
        self.name = name
        self._coordinator = coordinator
        self._next_delay = next_delay
        self._callback = callback
        self._dispatch = dispatch or (lambda work: work())
        self._cancelled = Event()
        self._thread: Optional[Thread] = None

    @property
    def is_active(self) -> bool:
        """True while the timer thread runs and has not been cancelled."""
        return (
            self._thread is not None
            and self._thread.is_alive()
            and not self._cancelled.is_set()
        )

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError(f"Timer {self.name} already started")
        self._thread = self._coordinator.create_thread(
            target=self._run, name=self.name, daemon=True
        )
        self._coordinator.start_thread(self._thread)

    def cancel(self) -> None:
        """Stop future firings; a firing already queued on `dispatch` still runs."""
        self._cancelled.set()

    def _run(self) -> None:
        while not self._cancelled.is_set():
            delay = self._next_delay()
            if delay is None:
                logger.debug("Timer %s has no further firings scheduled.", self.name)
                return
            if self._cancelled.wait(delay):
                return
            self._dispatch(self._callback)
