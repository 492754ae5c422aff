"""End-to-end tests: ConnectionController driving a BleakStack over fake bleak clients."""

import time
from types import SimpleNamespace

import pytest

from bleconnector.interfaces.ble.constants import CHARACTERISTIC_UUID
from bleconnector.interfaces.ble.controller import ConnectionController
from bleconnector.interfaces.ble.policies import ReconnectPolicy
from bleconnector.interfaces.ble.stack import BleakStack
from bleconnector.interfaces.ble.state import ConnectionState

from test_ble_fixtures import FakeScanner

pytestmark = [pytest.mark.ble, pytest.mark.slow]

ADDRESS = "AA:BB:CC:DD:EE:01"


def wait_for(predicate, timeout=3.0, interval=0.01):
    """Poll `predicate` until it is truthy or `timeout` expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


@pytest.fixture
def scanners():
    return []


@pytest.fixture
def make_live_controller(client_class, scanners):
    """Build a controller on a real BleakStack whose scanner and clients are fakes."""
    created = []

    def scanner_factory(**kwargs):
        scanners.append(FakeScanner(**kwargs))
        return scanners[-1]

    def _make(liveness_interval=60.0):
        stack = BleakStack(scanner_factory=scanner_factory, client_factory=client_class)
        controller = ConnectionController(
            stack,
            reconnect_policy=ReconnectPolicy.fixed(0.05),
            liveness_interval=liveness_interval,
        )
        created.append(controller)
        return controller

    yield _make
    for controller in created:
        controller.close()


def link_clients(client_class):
    """Clients opened for connections (the scan client has no target)."""
    return [client for client in client_class.created if client.target is not None]


def notify_handler(client):
    for characteristic, handler in client.notify:
        if characteristic.uuid == CHARACTERISTIC_UUID:
            return handler
    return None


def connect_and_stream(controller, client_class, scanners):
    """Discover the peripheral, connect, and check one payload arrives."""
    controller.start_scan()
    assert wait_for(lambda: bool(scanners) and scanners[0].detection_callback is not None)
    device = SimpleNamespace(address=ADDRESS, name="ZeBLE-01")
    scanners[0].detection_callback(device, SimpleNamespace(local_name="ZeBLE-01", rssi=-50))
    assert wait_for(lambda: len(controller.peripherals) == 1)

    controller.connect(ADDRESS)
    assert wait_for(lambda: controller.state == ConnectionState.CONNECTED)
    first = link_clients(client_class)[-1]
    assert wait_for(lambda: notify_handler(first) is not None)

    notify_handler(first)(None, bytearray(b"20.0C\n"))
    assert wait_for(lambda: controller.received == ("20.0C",))
    return first


def assert_streams_after_reconnect(controller, client_class, first):
    assert wait_for(
        lambda: len(link_clients(client_class)) == 2
        and controller.state == ConnectionState.CONNECTED
    )
    second = link_clients(client_class)[-1]
    assert second is not first
    assert wait_for(lambda: notify_handler(second) is not None)

    notify_handler(second)(None, bytearray(b"21.5C"))
    assert wait_for(lambda: controller.received == ("20.0C", "21.5C"))
    assert controller.status == "Connected to ZeBLE-01"


class TestReconnectDelivery:
    def test_reported_disconnect_resubscribes(self, make_live_controller, client_class, scanners):
        controller = make_live_controller()
        first = connect_and_stream(controller, client_class, scanners)

        first.connected = False
        first.kwargs["disconnected_callback"](first.bleak_client)

        assert_streams_after_reconnect(controller, client_class, first)
        assert wait_for(lambda: first.closed)

    def test_silent_drop_found_by_liveness_resubscribes(
        self, make_live_controller, client_class, scanners
    ):
        controller = make_live_controller(liveness_interval=0.05)
        first = connect_and_stream(controller, client_class, scanners)

        first.connected = False

        assert_streams_after_reconnect(controller, client_class, first)
        assert wait_for(lambda: first.disconnected and first.closed)

    def test_late_callback_from_dropped_client_keeps_new_link(
        self, make_live_controller, client_class, scanners
    ):
        controller = make_live_controller(liveness_interval=0.05)
        first = connect_and_stream(controller, client_class, scanners)
        first.connected = False
        assert_streams_after_reconnect(controller, client_class, first)

        first.kwargs["disconnected_callback"](first.bleak_client)
        time.sleep(0.2)

        assert controller.state == ConnectionState.CONNECTED
        assert len(link_clients(client_class)) == 2
