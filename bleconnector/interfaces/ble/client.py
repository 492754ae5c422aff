"""BLE client management and async operations."""

import asyncio
from concurrent.futures import TimeoutError as FutureTimeoutError
from threading import Thread
from typing import Any, Optional

from bleak import BleakClient as BleakRootClient
from bleak import BleakScanner

from bleconnector.interfaces.ble.constants import (
    BLECLIENT_ERROR_ASYNC_TIMEOUT,
    BLEConfig,
    ERROR_CHARACTERISTIC_NOT_FOUND,
    ERROR_SERVICE_NOT_FOUND,
    logger,
)
from bleconnector.interfaces.ble.errors import BLEError, BLEErrorHandler


class BLEClient:
    """
    Client wrapper for managing BLE device connections with thread-safe async operations.

    This class provides a synchronous interface to Bleak's async operations by running
    an internal event loop in a dedicated thread, so the controller's event thread can
    issue connect/notify calls without owning an event loop itself.
    """

    BLEError = BLEError

    def __init__(self, address_or_device=None, *, log_if_no_address: bool = True, **kwargs) -> None:
        """
        Create a dedicated asyncio event loop thread and optionally attach a Bleak client.

        Parameters:
            address_or_device: BLE address string or bleak ``BLEDevice``. If None, only
                `discover` works.
            log_if_no_address (bool): If True and no target is given, emit a debug message
                indicating discovery-only mode.
            **kwargs: Forwarded to the underlying Bleak client constructor (for example
                ``disconnected_callback``).
        """
        self.error_handler = BLEErrorHandler()
        self.bleak_client: Optional[BleakRootClient] = None
        self._eventLoop = asyncio.new_event_loop()
        self._eventThread = Thread(
            target=self._run_event_loop, name="BLEClient", daemon=True
        )
        try:
            self._eventThread.start()
        except RuntimeError:
            self._eventLoop.close()
            raise

        if not address_or_device:
            if log_if_no_address:
                logger.debug("No address provided - only discover method will work.")
            return

        self.bleak_client = BleakRootClient(address_or_device, **kwargs)

    @property
    def address(self) -> Optional[str]:
        return getattr(self.bleak_client, "address", None)

    def discover(self, **kwargs):  # pylint: disable=C0116
        """
        Discover nearby BLE devices.

        Keyword arguments are forwarded to BleakScanner.discover (for example `timeout`
        or `return_adv`).
        """
        return self.async_await(BleakScanner.discover(**kwargs))

    def connect(self, *, await_timeout: Optional[float] = None, **kwargs):  # pylint: disable=C0116
        if self.bleak_client is None:
            raise self.BLEError("Cannot connect: BLE client not initialized")
        return self.async_await(
            self.bleak_client.connect(**kwargs), timeout=await_timeout
        )

    def is_connected(self) -> bool:
        """
        Determine whether the underlying Bleak client is currently connected.

        Returns:
            `True` if the Bleak client reports a connection; `False` otherwise, including
            when no Bleak client exists or the state cannot be read.
        """
        bleak_client = self.bleak_client
        if bleak_client is None:
            return False

        def _check_connection():
            connected = getattr(bleak_client, "is_connected", False)
            if callable(connected):
                connected = connected()
            return bool(connected)

        return self.error_handler.safe_execute(
            _check_connection,
            default_return=False,
            error_msg="Unable to read bleak connection state",
        )

    def disconnect(self, *, await_timeout: Optional[float] = None, **kwargs):  # pylint: disable=C0116
        if self.bleak_client is None:
            raise self.BLEError("Cannot disconnect: BLE client not initialized")
        self.async_await(self.bleak_client.disconnect(**kwargs), timeout=await_timeout)

    def get_characteristic(self, service_uuid: str, characteristic_uuid: str) -> Any:
        """
        Look up a characteristic within a service on the connected device.

        Returns:
            The bleak ``BleakGATTCharacteristic``.

        Raises:
            BLEError: If the client is not connected, or the service or characteristic
                is missing.
        """
        if self.bleak_client is None:
            raise self.BLEError("Cannot read services: BLE client not initialized")
        services = getattr(self.bleak_client, "services", None)
        service = services.get_service(service_uuid) if services else None
        if service is None:
            raise self.BLEError(ERROR_SERVICE_NOT_FOUND.format(service_uuid, self.address))
        characteristic = service.get_characteristic(characteristic_uuid)
        if characteristic is None:
            raise self.BLEError(
                ERROR_CHARACTERISTIC_NOT_FOUND.format(characteristic_uuid, self.address)
            )
        return characteristic

    def start_notify(self, *args, timeout: Optional[float] = None, **kwargs):  # pylint: disable=C0116
        if self.bleak_client is None:
            raise self.BLEError("Cannot start notify: BLE client not initialized")
        self.async_await(
            self.bleak_client.start_notify(*args, **kwargs), timeout=timeout
        )

    def close(self):  # pylint: disable=C0116
        """
        Shut down the client's asyncio event loop and its background thread.
        """
        self.async_run(self._stop_event_loop())
        self._eventThread.join(timeout=BLEConfig.BLECLIENT_EVENT_THREAD_JOIN_TIMEOUT)
        if self._eventThread.is_alive():
            logger.warning(
                "BLE event thread did not exit within %.1fs",
                BLEConfig.BLECLIENT_EVENT_THREAD_JOIN_TIMEOUT,
            )

    def __enter__(self):
        return self

    def __exit__(self, _type, _value, _traceback):
        self.close()

    def async_await(self, coro, timeout=None):  # pylint: disable=C0116
        """
        Wait for the given coroutine to complete on the client's event loop and return its result.

        Raises:
            BLEError: If the wait times out; the pending task is cancelled first.
        """
        # Bleak* exceptions propagate so the stack adapter can classify them.
        future = self.async_run(coro)
        try:
            return future.result(timeout)
        except (FutureTimeoutError, RuntimeError) as e:
            future.cancel()
            raise self.BLEError(BLECLIENT_ERROR_ASYNC_TIMEOUT) from e

    def async_run(self, coro):  # pylint: disable=C0116
        return asyncio.run_coroutine_threadsafe(coro, self._eventLoop)

    def _run_event_loop(self):
        self.error_handler.safe_execute(
            self._eventLoop.run_forever, error_msg="Error in event loop"
        )
        self._eventLoop.close()

    async def _stop_event_loop(self):
        self._eventLoop.stop()
