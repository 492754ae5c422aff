"""BLE reconnection scheduling and liveness checking."""

from functools import partial
from threading import RLock
from typing import Callable, Optional

from bleconnector.interfaces.ble.constants import BLEConfig, logger
from bleconnector.interfaces.ble.coordination import RepeatingTimer, ThreadCoordinator
from bleconnector.interfaces.ble.policies import ReconnectPolicy, RetryPolicy

Dispatch = Callable[[Callable[[], None]], None]


class ReconnectScheduler:
    """
    The single authority that re-issues connect requests.

    While armed, a timer fires every policy interval and hands ``attempt`` to
    ``dispatch``. Arming an armed scheduler is a no-op, so the liveness check
    and the disconnect handler can both ask for a reconnect without ever
    running two loops. Each arm/cancel starts a new generation; firings that
    were queued by an older generation are dropped.
    """

    def __init__(
        self,
        thread_coordinator: ThreadCoordinator,
        dispatch: Dispatch,
        attempt: Callable[[], None],
        policy: Optional[ReconnectPolicy] = None,
        on_exhausted: Optional[Callable[[], None]] = None,
    ):
        self.thread_coordinator = thread_coordinator
        self._dispatch = dispatch
        self._attempt = attempt
        self._on_exhausted = on_exhausted
        self._reconnect_policy = policy or RetryPolicy.auto_reconnect()
        self._lock = RLock()
        self._timer: Optional[RepeatingTimer] = None
        self._generation = 0

    @property
    def policy(self) -> ReconnectPolicy:
        return self._reconnect_policy

    @property
    def is_armed(self) -> bool:
        with self._lock:
            return self._timer is not None and self._timer.is_active

    def arm(self) -> bool:
        """
        Start the reconnect timer unless it is already running.

        Returns:
            bool: True if a new timer was started, False if one was already armed.
        """
        with self._lock:
            if self._timer is not None and self._timer.is_active:
                logger.debug("Auto-reconnect already armed; skipping new timer.")
                return False
            self._generation += 1
            self._reconnect_policy.reset()
            timer = RepeatingTimer(
                self.thread_coordinator,
                "BLEReconnectTimer",
                self._next_delay,
                partial(self._fire, self._generation),
                dispatch=self._dispatch,
            )
            self._timer = timer
            timer.start()
            logger.debug(
                "Auto-reconnect armed (first attempt in %.2fs).",
                self._reconnect_policy.get_delay(0),
            )
            return True

    def cancel(self) -> bool:
        """
        Stop the reconnect timer.

        Returns:
            bool: True if an armed timer was cancelled.
        """
        with self._lock:
            timer = self._timer
            self._timer = None
            self._generation += 1
            if timer is None:
                return False
            was_active = timer.is_active
            timer.cancel()
            if was_active:
                logger.debug("Auto-reconnect timer cancelled.")
            return was_active

    def _next_delay(self) -> Optional[float]:
        with self._lock:
            delay, should_retry = self._reconnect_policy.next_attempt()
            generation = self._generation
        if not should_retry:
            logger.info("Auto-reconnect reached maximum retry limit.")
            if self._on_exhausted is not None:
                self._dispatch(partial(self._exhausted, generation))
            return None
        logger.debug("Waiting %.2f seconds before next reconnect attempt.", delay)
        return delay

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                logger.debug("Dropping reconnect firing from a cancelled timer.")
                return
            attempt_num = self._reconnect_policy.get_attempt_count()
        logger.info("Attempting BLE auto-reconnect (attempt %d).", attempt_num)
        self._attempt()

    def _exhausted(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
        assert self._on_exhausted is not None
        self._on_exhausted()


class LivenessMonitor:
    """Periodically run a liveness check on the controller's event path."""

    def __init__(
        self,
        thread_coordinator: ThreadCoordinator,
        dispatch: Dispatch,
        check: Callable[[], None],
        interval: float = BLEConfig.LIVENESS_CHECK_INTERVAL,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        self.thread_coordinator = thread_coordinator
        self.interval = interval
        self._dispatch = dispatch
        self._check = check
        self._lock = RLock()
        self._timer: Optional[RepeatingTimer] = None

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._timer is not None and self._timer.is_active

    def start(self) -> bool:
        with self._lock:
            if self._timer is not None and self._timer.is_active:
                return False
            self._timer = RepeatingTimer(
                self.thread_coordinator,
                "BLELivenessCheck",
                lambda: self.interval,
                self._check,
                dispatch=self._dispatch,
            )
            self._timer.start()
            logger.debug("Liveness check running every %.1fs.", self.interval)
            return True

    def stop(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
