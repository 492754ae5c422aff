"""Shared test doubles for BLE connector tests."""

import asyncio
import threading
from types import SimpleNamespace
from typing import List, Optional, Set, Tuple

from pubsub import pub

from bleconnector.interfaces.ble.discovery import Peripheral
from bleconnector.interfaces.ble.errors import BLEError
from bleconnector.interfaces.ble.publishing import (
    TOPIC_CONNECTION_STATUS,
    TOPIC_DATA_RECEIVED,
    TOPIC_DISCOVERY_CHANGED,
)
from bleconnector.interfaces.ble.stack import BLEStack


class InlineDispatcher:
    """Dispatcher whose queueWork runs the callback immediately on the calling thread."""

    def __init__(self):
        self.count = 0

    def queueWork(self, runnable):
        """
        Invoke the given callback immediately when a callable is provided.
        """
        if runnable:
            self.count += 1
            runnable()


class FakeStack(BLEStack):
    """
    Recording BLEStack double.

    Every request is appended to ``calls`` as a tuple; ``connected`` holds the
    identifiers the fake reports as linked for the liveness check. Setting
    ``connect_error`` makes ``connect`` raise synchronously.
    """

    def __init__(self):
        self.calls: List[Tuple] = []
        self.connected: Set[str] = set()
        self.connect_error: Optional[BaseException] = None
        self.is_connected_error: Optional[BaseException] = None
        self.connect_event = threading.Event()
        self.closed = False

    def start_scan(self):
        self.calls.append(("start_scan",))

    def stop_scan(self):
        self.calls.append(("stop_scan",))

    def connect(self, peripheral):
        self.calls.append(("connect", peripheral.identifier))
        self.connect_event.set()
        if self.connect_error is not None:
            raise self.connect_error

    def disconnect(self, peripheral):
        self.calls.append(("disconnect", peripheral.identifier))
        self.connected.discard(peripheral.identifier)

    def subscribe(self, peripheral, service_uuid, characteristic_uuid):
        self.calls.append(("subscribe", peripheral.identifier, service_uuid, characteristic_uuid))

    def is_connected(self, peripheral):
        if self.is_connected_error is not None:
            raise self.is_connected_error
        return peripheral.identifier in self.connected

    def close(self):
        self.closed = True
        self.calls.append(("close",))

    def names(self) -> List[str]:
        """Return just the operation names, in call order."""
        return [call[0] for call in self.calls]

    def connects(self) -> List[str]:
        return [call[1] for call in self.calls if call[0] == "connect"]

    def disconnects(self) -> List[str]:
        return [call[1] for call in self.calls if call[0] == "disconnect"]


class PubRecorder:
    """Subscribe to every controller topic and record what is published."""

    def __init__(self):
        self.data: List[Tuple[str, Optional[Peripheral]]] = []
        self.statuses: List[str] = []
        self.discoveries: List[Tuple[Peripheral, ...]] = []
        self.data_event = threading.Event()
        pub.subscribe(self.on_data, TOPIC_DATA_RECEIVED)
        pub.subscribe(self.on_status, TOPIC_CONNECTION_STATUS)
        pub.subscribe(self.on_discovery, TOPIC_DISCOVERY_CHANGED)

    def on_data(self, text, peripheral):
        self.data.append((text, peripheral))
        self.data_event.set()

    def on_status(self, status, peripheral):
        self.statuses.append(status)

    def on_discovery(self, peripherals):
        self.discoveries.append(peripherals)


class FakeScanner:
    """BleakScanner double; a `gate` Event holds start() until it is set."""

    def __init__(self, detection_callback=None, start_error=None, gate=None):
        self.detection_callback = detection_callback
        self.start_error = start_error
        self.gate = gate
        self.started = 0
        self.stopped = 0

    async def start(self):
        if self.gate is not None:
            self.gate.wait(2.0)
        if self.start_error is not None:
            raise self.start_error
        self.started += 1

    async def stop(self):
        self.stopped += 1


class FakeClient:
    """BLEClient double; behaviour is configured through class-level knobs per test."""

    connect_error = None
    missing_characteristic = False
    scan_response = None
    scan_error = None

    def __init__(self, address_or_device=None, *, log_if_no_address=True, **kwargs):
        self.target = address_or_device
        self.kwargs = kwargs
        self.bleak_client = SimpleNamespace(address=address_or_device)
        self.connected = False
        self.closed = False
        self.disconnected = False
        self.notify = []

    def connect(self, *, await_timeout=None, **_kwargs):
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    def is_connected(self):
        return self.connected

    def disconnect(self, *, await_timeout=None, **_kwargs):
        self.connected = False
        self.disconnected = True

    def get_characteristic(self, service_uuid, characteristic_uuid):
        if self.missing_characteristic:
            raise BLEError(f"Characteristic {characteristic_uuid} not found")
        return SimpleNamespace(uuid=characteristic_uuid, service_uuid=service_uuid)

    def start_notify(self, characteristic, handler, timeout=None):
        self.notify.append((characteristic, handler))

    def discover(self, **_kwargs):
        if self.scan_error is not None:
            raise self.scan_error
        return self.scan_response

    def async_await(self, coro, timeout=None):
        loop = asyncio.new_event_loop()
        try:
            return loop.run_until_complete(coro)
        finally:
            loop.close()

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, _type, _value, _traceback):
        self.close()
