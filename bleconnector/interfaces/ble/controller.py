"""Connection lifecycle controller."""

from functools import partial
from typing import Any, Callable, Optional, Tuple

from bleconnector.interfaces.ble.constants import (
    BLEConfig,
    ERROR_CONTROLLER_CLOSED,
    ERROR_UNKNOWN_PERIPHERAL,
    logger,
)
from bleconnector.interfaces.ble.coordination import ThreadCoordinator
from bleconnector.interfaces.ble.datalog import ReceivedDataLog
from bleconnector.interfaces.ble.deferred import DeferredExecution
from bleconnector.interfaces.ble.discovery import DiscoverySet, Peripheral
from bleconnector.interfaces.ble.errors import BLEError, BLEErrorHandler
from bleconnector.interfaces.ble.policies import ReconnectPolicy
from bleconnector.interfaces.ble.publishing import ControllerSnapshot, EventPublisher
from bleconnector.interfaces.ble.reconnection import LivenessMonitor, ReconnectScheduler
from bleconnector.interfaces.ble.stack import BLEStack
from bleconnector.interfaces.ble.state import BLEStateManager, ConnectionState
from bleconnector.interfaces.ble.utils import decode_payload


class ConnectionController:
    """
    Owns discovery, the single active peripheral, and its reconnect cycle.

    Radio events reach the controller through :meth:`post`, which queues them
    on one event thread (a :class:`DeferredExecution`); the reconnect and
    liveness timers post onto the same queue. User operations
    (:meth:`connect`, :meth:`disconnect`, :meth:`start_scan`) run on the
    caller's thread under the state lock, so every state change is
    serialized.

    Architecture:
        - BLEStateManager: validated state machine for the active peripheral
        - DiscoverySet: filtered, de-duplicated scan results
        - ReceivedDataLog: append-only decoded payloads
        - ReconnectScheduler: the only component that re-issues connects
        - LivenessMonitor: periodic check for disconnects the stack never reported
        - EventPublisher: pypubsub topics for UI and notification consumers
    """

    BLEError = BLEError

    def __init__(
        self,
        stack: BLEStack,
        *,
        name_filter: Optional[str] = BLEConfig.DEFAULT_NAME_FILTER,
        reconnect_policy: Optional[ReconnectPolicy] = None,
        liveness_interval: float = BLEConfig.LIVENESS_CHECK_INTERVAL,
        auto_reconnect: bool = True,
        dispatcher: Any = None,
        publisher: Optional[EventPublisher] = None,
    ) -> None:
        """
        Create the controller and bind it to `stack`.

        Parameters:
            stack (BLEStack): Radio stack collaborator.
            name_filter (Optional[str]): Substring an advertised name must contain to be
                listed; None or "" lists every peripheral.
            reconnect_policy (Optional[ReconnectPolicy]): Interval policy for the reconnect
                timer; defaults to a fixed BLEConfig.RECONNECT_INTERVAL.
            liveness_interval (float): Seconds between liveness checks.
            auto_reconnect (bool): If False, a dropped link is not re-established.
            dispatcher: Object with a ``queueWork(callable)`` method that serializes events;
                defaults to a private DeferredExecution thread.
            publisher (Optional[EventPublisher]): pypubsub publisher for observable state.
        """
        self.stack = stack
        self.auto_reconnect = auto_reconnect
        self._state_manager = BLEStateManager()
        self._state_lock = self._state_manager.lock
        self._discovery = DiscoverySet(name_filter)
        self._received = ReceivedDataLog()
        self._publisher = publisher or EventPublisher()
        self.error_handler = BLEErrorHandler()
        self.thread_coordinator = ThreadCoordinator()

        self._owns_dispatcher = dispatcher is None
        self._dispatcher = dispatcher if dispatcher is not None else DeferredExecution()
        self._reconnect_scheduler = ReconnectScheduler(
            self.thread_coordinator,
            self._dispatcher.queueWork,
            self._on_reconnect_timer,
            policy=reconnect_policy,
            on_exhausted=self._on_reconnect_exhausted,
        )
        self._liveness_monitor = LivenessMonitor(
            self.thread_coordinator,
            self._dispatcher.queueWork,
            self.check_liveness,
            liveness_interval,
        )

        self._scanning = False
        self._closed = False
        self._reconnect_exhausted = False
        self._last_error: Optional[BaseException] = None
        self._last_status: Optional[str] = None
        stack.bind(self)

    def __repr__(self):
        return (
            f"ConnectionController(state={self.state.value!r}, "
            f"active={self.active_peripheral!r}, name_filter={self.name_filter!r})"
        )

    def __enter__(self):
        return self

    def __exit__(self, _type, _value, _traceback):
        self.close()

    # -- observable state ------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state_manager.state

    @property
    def active_peripheral(self) -> Optional[Peripheral]:
        return self._state_manager.peripheral

    @property
    def name_filter(self) -> Optional[str]:
        return self._discovery.name_filter

    @property
    def peripherals(self) -> Tuple[Peripheral, ...]:
        """The discovery set as a tuple."""
        return self._discovery.snapshot()

    @property
    def received(self) -> Tuple[str, ...]:
        """The received-data log, oldest first."""
        return self._received.entries()

    @property
    def is_scanning(self) -> bool:
        with self._state_lock:
            return self._scanning

    @property
    def is_reconnect_armed(self) -> bool:
        return self._reconnect_scheduler.is_armed

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def last_error(self) -> Optional[BaseException]:
        return self._last_error

    @property
    def status(self) -> str:
        """Human-readable connection status for display."""
        with self._state_lock:
            state = self._state_manager.state
            peripheral = self._state_manager.peripheral
            name = peripheral.display_name if peripheral else None
            if state == ConnectionState.CONNECTED:
                return f"Connected to {name}"
            if state == ConnectionState.CONNECTING:
                return f"Connecting to {name}"
            if state == ConnectionState.RECONNECTING:
                return f"Reconnecting to {name}"
            if state == ConnectionState.FAILED:
                return f"Failed: {name}"
            return "Scanning" if self._scanning else "Disconnected"

    def snapshot(self) -> ControllerSnapshot:
        with self._state_lock:
            return ControllerSnapshot(
                peripherals=self.peripherals,
                status=self.status,
                state=self._state_manager.state,
                active_peripheral=self._state_manager.peripheral,
                received=self.received,
            )

    # -- event delivery --------------------------------------------------

    def post(self, handler: Callable[..., None], *args) -> None:
        """Queue `handler(*args)` on the controller's event thread."""
        if self._closed:
            logger.debug("Dropping %s; controller is closed.", getattr(handler, "__name__", handler))
            return
        self._dispatcher.queueWork(partial(handler, *args))

    # -- user operations -------------------------------------------------

    def start_scan(self, filter_substring: Optional[str] = None) -> None:
        """
        Begin discovery.

        Parameters:
            filter_substring (Optional[str]): New name filter. None keeps the current
                filter; "" disables filtering. Changing the filter clears the discovery set.
        """
        self._ensure_open()
        with self._state_lock:
            if filter_substring is not None and (filter_substring or None) != self.name_filter:
                self._discovery.name_filter = filter_substring
                self._publisher.discovery_changed(self.peripherals)
            logger.info(
                "Scanning for BLE peripherals (filter: %s)",
                repr(self.name_filter) if self.name_filter else "none",
            )
            self._resume_scan()
            self._publish_status()

    def set_name_filter(self, filter_substring: Optional[str]) -> None:
        """Replace the name filter, clear the discovery set, and restart scanning."""
        self._ensure_open()
        with self._state_lock:
            self._discovery.name_filter = filter_substring
            self._publisher.discovery_changed(self.peripherals)
            self._halt_scan()
            self._resume_scan()
            self._publish_status()

    def stop_scan(self) -> None:
        with self._state_lock:
            self._halt_scan()
            self._publish_status()

    def connect(self, peripheral_id: str) -> None:
        """
        Make `peripheral_id` the active peripheral and request a connection.

        Any other active peripheral is disconnected first, so at most one
        peripheral is ever active.

        Raises:
            BLEError: If the identifier is unknown or the controller is closed.
        """
        self._ensure_open()
        with self._state_lock:
            current = self._state_manager.peripheral
            peripheral = self._discovery.get(peripheral_id)
            if peripheral is None and current is not None and current.identifier == peripheral_id:
                peripheral = current
            if peripheral is None:
                raise self.BLEError(ERROR_UNKNOWN_PERIPHERAL.format(peripheral_id))

            if current is not None and current != peripheral:
                self._release_active(f"switching to {peripheral.display_name}")
            elif current is not None:
                state = self._state_manager.state
                if state in (
                    ConnectionState.CONNECTED,
                    ConnectionState.CONNECTING,
                    ConnectionState.RECONNECTING,
                ):
                    logger.debug("Already %s %s; ignoring connect.", state.value, peripheral)
                    return
                self._reconnect_scheduler.cancel()

            self._reconnect_exhausted = False
            self._state_manager.transition_to(ConnectionState.CONNECTING, peripheral)
            self._publish_status()
            self._issue_connect(peripheral)
            self._liveness_monitor.start()

    def disconnect(self) -> None:
        """User-initiated disconnect: release the active peripheral without reconnecting."""
        with self._state_lock:
            previous = self._release_active("user request")
            if previous is None:
                return
            if not self._closed:
                self._resume_scan()
            self._publish_status()

    # -- radio callbacks -------------------------------------------------

    def on_discovered(self, peripheral: Peripheral) -> None:
        if self._closed:
            return
        if self._discovery.add(peripheral):
            self._publisher.discovery_changed(self.peripherals)

    def on_connected(self, peripheral_id: str) -> None:
        with self._state_lock:
            if not self._state_manager.is_active(peripheral_id):
                logger.info("Ignoring connect from inactive peripheral %s; dropping it.", peripheral_id)
                stale = self._discovery.get(peripheral_id) or Peripheral(peripheral_id)
                self.error_handler.safe_execute(
                    lambda: self.stack.disconnect(stale),
                    error_msg="Error disconnecting stale peripheral",
                )
                return
            peripheral = self._state_manager.peripheral
            assert peripheral is not None
            if self._state_manager.state == ConnectionState.CONNECTED:
                logger.debug("Duplicate connect event for %s ignored.", peripheral_id)
                return
            if self._state_manager.state in (ConnectionState.DISCONNECTED, ConnectionState.FAILED):
                # A failure or liveness verdict raced the connect; reassert before CONNECTED.
                self._state_manager.transition_to(ConnectionState.RECONNECTING)
            self._halt_scan()
            self._state_manager.transition_to(ConnectionState.CONNECTED)
            self._reconnect_scheduler.cancel()
            self._reconnect_exhausted = False
            self._last_error = None
            logger.info("Connected to %s", peripheral.display_name)
            self._publish_status()
            self.error_handler.safe_execute(
                lambda: self.stack.subscribe(
                    peripheral,
                    BLEConfig.SERVICE_UUID,
                    BLEConfig.CHARACTERISTIC_UUID,
                ),
                error_msg="Error requesting notification subscription",
            )

    def on_disconnected(self, peripheral_id: str) -> None:
        with self._state_lock:
            if self._closed or not self._state_manager.is_active(peripheral_id):
                logger.debug("Ignoring disconnect from inactive peripheral %s.", peripheral_id)
                return
            peripheral = self._state_manager.peripheral
            assert peripheral is not None
            if self._state_manager.state != ConnectionState.DISCONNECTED:
                self._state_manager.transition_to(ConnectionState.DISCONNECTED)
            logger.info("Disconnected from %s", peripheral.display_name)
            self._resume_scan()
            self._schedule_reconnect()
            self._publish_status()

    def on_connect_failed(self, peripheral_id: str, error: Optional[BaseException] = None) -> None:
        with self._state_lock:
            if self._closed or not self._state_manager.is_active(peripheral_id):
                logger.debug("Ignoring connect failure of inactive peripheral %s.", peripheral_id)
                return
            peripheral = self._state_manager.peripheral
            assert peripheral is not None
            logger.warning(
                "Failed to connect to %s: %s",
                peripheral.display_name,
                error if error is not None else "Unknown error",
            )
            self._last_error = error
            if self._state_manager.state != ConnectionState.FAILED:
                self._state_manager.transition_to(ConnectionState.FAILED)
            self._resume_scan()
            self._schedule_reconnect()
            self._publish_status()

    def on_subscription_failed(self, peripheral_id: str, error: Optional[BaseException] = None) -> None:
        """Service or characteristic discovery failed: drop the link and let reconnect retry."""
        with self._state_lock:
            if self._closed or not self._state_manager.is_active(peripheral_id):
                return
            peripheral = self._state_manager.peripheral
            assert peripheral is not None
            logger.warning(
                "Error discovering characteristics on %s: %s",
                peripheral.display_name,
                error,
            )
            self._last_error = error
            if self._state_manager.state != ConnectionState.FAILED:
                self._state_manager.transition_to(ConnectionState.FAILED)
            self.error_handler.safe_execute(
                lambda: self.stack.disconnect(peripheral),
                error_msg="Error dropping link after subscription failure",
            )
            self._resume_scan()
            self._schedule_reconnect()
            self._publish_status()

    def on_read_error(self, peripheral_id: str, error: Optional[BaseException] = None) -> None:
        logger.warning("Error updating characteristic value from %s: %s", peripheral_id, error)

    def on_data_received(self, data, peripheral_id: Optional[str] = None) -> None:
        """Decode a notification payload, log it, and emit one data-received event."""
        try:
            text = decode_payload(data)
        except UnicodeDecodeError:
            logger.warning("Malformed payload received (not valid utf-8). Skipping.")
            return
        with self._state_lock:
            if peripheral_id is not None and not self._state_manager.is_active(peripheral_id):
                logger.debug("Dropping payload from inactive peripheral %s.", peripheral_id)
                return
            peripheral = self._state_manager.peripheral
            self._received.append(text)
        logger.debug("Received data: %s", text)
        self._publisher.data_received(text, peripheral)

    # -- timers ----------------------------------------------------------

    def check_liveness(self) -> None:
        """
        Verify the active peripheral is really connected.

        A CONNECTED peripheral whose link the stack no longer reports is treated
        as a missed disconnect. A peripheral that is down with no reconnect timer
        armed gets one. The check never issues a connect itself.
        """
        with self._state_lock:
            if self._closed:
                return
            peripheral = self._state_manager.peripheral
            if peripheral is None:
                return
            state = self._state_manager.state
            if state == ConnectionState.CONNECTED:
                alive = self.error_handler.safe_execute(
                    lambda: self.stack.is_connected(peripheral),
                    default_return=False,
                    error_msg="Unable to read link state",
                )
                if not alive:
                    logger.warning(
                        "Liveness check: %s has no link; treating as disconnected.",
                        peripheral.display_name,
                    )
                    self.error_handler.safe_execute(
                        lambda: self.stack.disconnect(peripheral),
                        error_msg="Error releasing dead link",
                    )
                    self.on_disconnected(peripheral.identifier)
                return
            if self._state_manager.is_connecting:
                return
            if self._reconnect_exhausted or self._reconnect_scheduler.is_armed:
                return
            logger.info(
                "Liveness check: %s is %s without a reconnect timer; arming one.",
                peripheral.display_name,
                state.value,
            )
            self._schedule_reconnect()

    def _on_reconnect_timer(self) -> None:
        with self._state_lock:
            if self._closed:
                return
            peripheral = self._state_manager.peripheral
            if peripheral is None:
                self._reconnect_scheduler.cancel()
                return
            state = self._state_manager.state
            if state == ConnectionState.CONNECTED:
                self._reconnect_scheduler.cancel()
                return
            if self._state_manager.is_connecting:
                logger.debug("Connect to %s still in flight; waiting.", peripheral.display_name)
                return
            self._state_manager.transition_to(ConnectionState.RECONNECTING)
            self._publish_status()
            self._issue_connect(peripheral)

    def _on_reconnect_exhausted(self) -> None:
        with self._state_lock:
            peripheral = self._state_manager.peripheral
            if self._closed or peripheral is None:
                return
            if self._state_manager.state == ConnectionState.CONNECTED:
                return
            self._reconnect_exhausted = True
            logger.error("Giving up reconnecting to %s.", peripheral.display_name)
            if self._state_manager.state != ConnectionState.FAILED:
                self._state_manager.transition_to(ConnectionState.FAILED)
            self._publish_status()

    # -- teardown --------------------------------------------------------

    def close(self) -> None:
        """Cancel timers, drop the active peripheral, and release the stack. Idempotent."""
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            self._reconnect_scheduler.cancel()
            self._liveness_monitor.stop()
            previous = self._state_manager.release()
            scanning = self._scanning
            self._scanning = False
        logger.debug("Closing connection controller")
        if scanning:
            self.error_handler.safe_cleanup(self.stack.stop_scan, "scan stop")
        if previous is not None:
            self.error_handler.safe_cleanup(
                lambda: self.stack.disconnect(previous), "peripheral disconnect"
            )
        self.error_handler.safe_cleanup(self.stack.close, "stack close")
        if self._owns_dispatcher:
            self.error_handler.safe_cleanup(self._dispatcher.close, "event queue close")
        self.thread_coordinator.cleanup()

    # -- helpers ---------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise self.BLEError(ERROR_CONTROLLER_CLOSED)

    def _issue_connect(self, peripheral: Peripheral) -> None:
        logger.info("Connecting to %s (%s)", peripheral.display_name, peripheral.identifier)
        try:
            self.stack.connect(peripheral)
        except Exception as e:  # noqa: BLE001
            self.on_connect_failed(peripheral.identifier, e)

    def _release_active(self, reason: str) -> Optional[Peripheral]:
        self._reconnect_scheduler.cancel()
        self._liveness_monitor.stop()
        previous = self._state_manager.release()
        if previous is not None:
            logger.info("Disconnecting from %s (%s)", previous.display_name, reason)
            self.error_handler.safe_execute(
                lambda: self.stack.disconnect(previous),
                error_msg="Error disconnecting peripheral",
            )
        return previous

    def _schedule_reconnect(self) -> None:
        if not self.auto_reconnect or self._closed or self._reconnect_exhausted:
            return
        self._reconnect_scheduler.arm()

    def _resume_scan(self) -> None:
        if self._scanning:
            return
        self._scanning = True
        self.error_handler.safe_execute(self.stack.start_scan, error_msg="Error starting scan")

    def _halt_scan(self) -> None:
        if not self._scanning:
            return
        self._scanning = False
        self.error_handler.safe_execute(self.stack.stop_scan, error_msg="Error stopping scan")

    def _publish_status(self) -> None:
        status = self.status
        if status == self._last_status:
            return
        self._last_status = status
        self._publisher.connection_status(status, self._state_manager.peripheral)
