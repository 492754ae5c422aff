"""The BLE radio stack collaborator and its bleak implementation."""

from abc import ABC, abstractmethod
from functools import partial
from threading import Event, RLock
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from bleak import BleakScanner
from bleak.exc import BleakDBusError, BleakError

from bleconnector.interfaces.ble.client import BLEClient
from bleconnector.interfaces.ble.constants import (
    BLEAK_VERSION,
    BLEConfig,
    DISCONNECT_TIMEOUT_SECONDS,
    logger,
)
from bleconnector.interfaces.ble.coordination import ThreadCoordinator
from bleconnector.interfaces.ble.deferred import DeferredExecution
from bleconnector.interfaces.ble.discovery import (
    Peripheral,
    parse_scan_response,
    peripheral_from_advertisement,
)
from bleconnector.interfaces.ble.errors import BLEError, BLEErrorHandler
from bleconnector.interfaces.ble.notifications import NotificationManager

if TYPE_CHECKING:
    from bleconnector.interfaces.ble.controller import ConnectionController


class BLEStack(ABC):
    """
    Radio stack primitives the connection controller drives.

    Implementations report results asynchronously by posting controller
    handlers (``on_discovered``, ``on_connected``, ``on_connect_failed``,
    ``on_disconnected``, ``on_subscription_failed``, ``on_data_received``,
    ``on_read_error``) through ``controller.post`` so that they run on the
    controller's event thread. None of the request methods may block on radio
    I/O or raise radio errors.
    """

    controller: Optional["ConnectionController"] = None

    def bind(self, controller: "ConnectionController") -> None:
        """Register the controller that receives radio events."""
        self.controller = controller

    def _post(self, handler_name: str, *args) -> None:
        controller = self.controller
        if controller is None:
            logger.debug("Dropping %s event; no controller bound.", handler_name)
            return
        controller.post(getattr(controller, handler_name), *args)

    @abstractmethod
    def start_scan(self) -> None:
        """Begin reporting advertisements."""

    @abstractmethod
    def stop_scan(self) -> None:
        """Stop reporting advertisements."""

    @abstractmethod
    def connect(self, peripheral: Peripheral) -> None:
        """Request a connection; completion is reported via on_connected / on_connect_failed."""

    @abstractmethod
    def disconnect(self, peripheral: Peripheral) -> None:
        """Drop the link to `peripheral` (no-op if not connected)."""

    @abstractmethod
    def subscribe(
        self, peripheral: Peripheral, service_uuid: str, characteristic_uuid: str
    ) -> None:
        """Discover the characteristic and start notifications on it."""

    @abstractmethod
    def is_connected(self, peripheral: Peripheral) -> bool:
        """Report whether the radio link to `peripheral` is up."""

    def close(self) -> None:
        """Release radio resources."""


class BleakStack(BLEStack):
    """
    ``BLEStack`` backed by bleak.

    A discovery-only ``BLEClient`` hosts the scanner on its event loop; each
    connection gets its own ``BLEClient``. Scanner start/stop run in request
    order on a dedicated queue, and connect/notify/disconnect calls run on
    worker threads, so the controller's threads never wait on the radio.
    All bleak errors are caught here, logged, and reported to the controller as
    events.

    Subscriptions and disconnect callbacks belong to one ``BLEClient``: a client
    replaced by a reconnect is disconnected, its subscriptions are forgotten,
    and its late callbacks are ignored.
    """

    def __init__(
        self,
        *,
        scanner_factory: Callable[..., Any] = BleakScanner,
        client_factory: Callable[..., BLEClient] = BLEClient,
        connection_timeout: float = BLEConfig.CONNECTION_TIMEOUT,
    ):
        self.scanner_factory = scanner_factory
        self.client_factory = client_factory
        self.connection_timeout = connection_timeout
        self.error_handler = BLEErrorHandler()
        self.thread_coordinator = ThreadCoordinator()
        self._notification_manager = NotificationManager()
        self._scan_queue = DeferredExecution("BLEScanControl")
        self._lock = RLock()
        self._clients: Dict[str, BLEClient] = {}
        self._scan_client: Optional[BLEClient] = None
        self._scanner: Any = None
        self._scanning = False
        self._scanner_running = False
        self._closed = False
        logger.debug("BleakStack using bleak %s", BLEAK_VERSION)

    @staticmethod
    def scan(
        name_filter: Optional[str] = BLEConfig.DEFAULT_NAME_FILTER,
        timeout: float = BLEConfig.BLE_SCAN_TIMEOUT,
        client_factory: Callable[..., BLEClient] = BLEClient,
    ) -> List[Peripheral]:
        """
        Run one timed discovery and return the peripherals matching `name_filter`.

        Returns:
            List[Peripheral]: Matching peripherals; empty if the scan failed.
        """
        with client_factory(log_if_no_address=False) as client:
            logger.debug("Scanning for BLE peripherals (takes %.0f seconds)...", timeout)
            try:
                response = client.discover(timeout=timeout, return_adv=True)
            except BleakDBusError:
                raise
            except (BleakError, BLEError, RuntimeError) as e:
                logger.warning("Device scan failed: %s", e, exc_info=True)
                return []
        return parse_scan_response(response, name_filter)

    @property
    def is_scanning(self) -> bool:
        """Whether a scan has been requested and has not failed or been stopped."""
        with self._lock:
            return self._scanning

    def flush_scan_requests(self, timeout: Optional[float] = None) -> bool:
        """Block until every queued scanner start/stop has run; returns False on timeout."""
        done = Event()
        self._scan_queue.queueWork(done.set)
        return done.wait(timeout)

    def start_scan(self) -> None:
        with self._lock:
            if self._scanning or self._closed:
                return
            if self._scan_client is None:
                self._scan_client = self.client_factory(log_if_no_address=False)
            if self._scanner is None:
                self._scanner = self.scanner_factory(
                    detection_callback=self._on_detection
                )
            self._scanning = True
            scan_client = self._scan_client
            scanner = self._scanner
        self._scan_queue.queueWork(partial(self._start_scanner, scan_client, scanner))

    def _start_scanner(self, scan_client: BLEClient, scanner: Any) -> None:
        # Runs on the scan queue only, as does _stop_scanner.
        with self._lock:
            if not self._scanning or self._scanner_running:
                return
        try:
            scan_client.async_await(scanner.start(), timeout=BLEConfig.GATT_IO_TIMEOUT)
        except (BleakError, BleakDBusError, BLEError, OSError) as e:
            logger.warning("Failed to start BLE scan: %s", e)
            with self._lock:
                self._scanning = False
            return
        self._scanner_running = True
        logger.debug("BLE scan started")

    def stop_scan(self) -> None:
        with self._lock:
            if not self._scanning:
                return
            self._scanning = False
            scan_client = self._scan_client
            scanner = self._scanner
        if scan_client is None or scanner is None:
            return
        self._scan_queue.queueWork(partial(self._stop_scanner, scan_client, scanner))

    def _stop_scanner(self, scan_client: BLEClient, scanner: Any) -> None:
        if not self._scanner_running:
            return
        self._scanner_running = False
        self.error_handler.safe_execute(
            lambda: scan_client.async_await(
                scanner.stop(), timeout=BLEConfig.GATT_IO_TIMEOUT
            ),
            error_msg="Failed to stop BLE scan",
        )
        logger.debug("BLE scan stopped")

    def _on_detection(self, device, advertisement_data) -> None:
        self._post(
            "on_discovered", peripheral_from_advertisement(device, advertisement_data)
        )

    def connect(self, peripheral: Peripheral) -> None:
        worker = self.thread_coordinator.create_thread(
            target=self._connect_worker,
            args=(peripheral,),
            name="BLEConnect",
            daemon=True,
        )
        self.thread_coordinator.start_thread(worker)

    def _connect_worker(self, peripheral: Peripheral) -> None:
        target = peripheral.device if peripheral.device is not None else peripheral.identifier
        client: Optional[BLEClient] = None
        try:
            client = self.client_factory(
                target,
                disconnected_callback=partial(
                    self._on_bleak_disconnect, peripheral.identifier
                ),
            )
            logger.info("Connecting to %s", peripheral.display_name)
            client.connect(
                await_timeout=self.connection_timeout,
                timeout=self.connection_timeout,
            )
        except Exception as e:  # noqa: BLE001
            logger.debug("Connect to %s failed", peripheral.identifier, exc_info=True)
            if client is not None:
                self.error_handler.safe_cleanup(client.close, "client close")
            self._post("on_connect_failed", peripheral.identifier, e)
            return
        with self._lock:
            previous = self._clients.get(peripheral.identifier)
            self._clients[peripheral.identifier] = client
            if previous is not None and previous is not client:
                self._notification_manager.unsubscribe_peripheral(peripheral.identifier)
        if previous is not None and previous is not client:
            logger.debug("Replacing stale client for %s", peripheral.identifier)
            self._close_client_async(previous)
        self._post("on_connected", peripheral.identifier)

    def _on_bleak_disconnect(self, peripheral_id: str, bleak_client=None) -> None:
        with self._lock:
            current = self._clients.get(peripheral_id)
            if current is None or (
                bleak_client is not None
                and getattr(current, "bleak_client", None) is not bleak_client
            ):
                logger.debug("Ignoring stale disconnect from %s.", peripheral_id)
                return
            del self._clients[peripheral_id]
            self._notification_manager.unsubscribe_peripheral(peripheral_id)
        logger.debug("Bleak reported disconnect of %s", peripheral_id)
        self._close_client_async(current)
        self._post("on_disconnected", peripheral_id)

    def disconnect(self, peripheral: Peripheral) -> None:
        with self._lock:
            client = self._clients.pop(peripheral.identifier, None)
            self._notification_manager.unsubscribe_peripheral(peripheral.identifier)
        if client is None:
            return
        self._close_client_async(client)

    def _close_client_async(self, client: BLEClient) -> None:
        worker = self.thread_coordinator.create_thread(
            target=self._disconnect_and_close_client,
            args=(client,),
            name="BLEClientClose",
            daemon=True,
        )
        self.thread_coordinator.start_thread(worker)

    def _disconnect_and_close_client(self, client: BLEClient) -> None:
        self.error_handler.safe_execute(
            lambda: client.disconnect(await_timeout=DISCONNECT_TIMEOUT_SECONDS),
            error_msg="Error disconnecting BLE client",
        )
        self.error_handler.safe_cleanup(client.close, "client close")

    def subscribe(
        self, peripheral: Peripheral, service_uuid: str, characteristic_uuid: str
    ) -> None:
        worker = self.thread_coordinator.create_thread(
            target=self._subscribe_worker,
            args=(peripheral.identifier, service_uuid, characteristic_uuid),
            name="BLESubscribe",
            daemon=True,
        )
        self.thread_coordinator.start_thread(worker)

    def _subscribe_worker(
        self, peripheral_id: str, service_uuid: str, characteristic_uuid: str
    ) -> None:
        with self._lock:
            client = self._clients.get(peripheral_id)
        if client is None:
            self._post(
                "on_subscription_failed",
                peripheral_id,
                BLEError(f"No open client for {peripheral_id}"),
            )
            return
        if self._notification_manager.get_callback(peripheral_id, characteristic_uuid):
            logger.debug("Already subscribed to %s on %s", characteristic_uuid, peripheral_id)
            return
        handler = partial(self._on_notification, peripheral_id)
        try:
            characteristic = client.get_characteristic(service_uuid, characteristic_uuid)
            client.start_notify(
                characteristic,
                handler,
                timeout=BLEConfig.NOTIFICATION_START_TIMEOUT,
            )
        except (BleakError, BleakDBusError, BLEError, RuntimeError, ValueError) as e:
            logger.debug("Subscription on %s failed", peripheral_id, exc_info=True)
            self._post("on_subscription_failed", peripheral_id, e)
            return
        with self._lock:
            if self._clients.get(peripheral_id) is not client:
                logger.debug("Client for %s replaced during subscribe", peripheral_id)
                return
            self._notification_manager.subscribe(peripheral_id, characteristic_uuid, handler)
        logger.debug("Notifications enabled for %s on %s", characteristic_uuid, peripheral_id)

    def _on_notification(self, peripheral_id: str, _sender, data) -> None:
        if data is None:
            self._post(
                "on_read_error", peripheral_id, BLEError("Notification without value")
            )
            return
        self._post("on_data_received", bytes(data), peripheral_id)

    def is_connected(self, peripheral: Peripheral) -> bool:
        with self._lock:
            client = self._clients.get(peripheral.identifier)
        return bool(client is not None and client.is_connected())

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self.stop_scan()
        self.error_handler.safe_cleanup(self._scan_queue.close, "scan queue close")
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
            scan_client = self._scan_client
            self._scan_client = None
        self._notification_manager.cleanup_all()
        for client in clients:
            self._disconnect_and_close_client(client)
        if scan_client is not None:
            self.error_handler.safe_cleanup(scan_client.close, "scan client close")
        self.thread_coordinator.cleanup()
