"""
Shared pytest fixtures for BLE connector tests.
"""

from typing import List

import pytest  # type: ignore[import-untyped]  # pylint: disable=E0401
from pubsub import pub

from bleconnector.interfaces.ble.controller import ConnectionController
from bleconnector.interfaces.ble.discovery import Peripheral
from bleconnector.interfaces.ble.policies import ReconnectPolicy

from test_ble_fixtures import FakeClient, FakeStack, InlineDispatcher, PubRecorder


@pytest.fixture
def fake_stack():
    """Provide a fresh recording FakeStack."""
    return FakeStack()


@pytest.fixture
def client_class():
    """A fresh FakeClient subclass so per-test knobs never leak; `created` lists every instance."""
    created = []

    class _Client(FakeClient):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            created.append(self)

    _Client.created = created
    return _Client


@pytest.fixture
def dispatcher():
    """Provide a synchronous dispatcher."""
    return InlineDispatcher()


@pytest.fixture
def recorder():
    """
    Provide a PubRecorder subscribed to all controller topics.

    pypubsub holds listeners weakly, so the fixture keeps the recorder alive
    for the whole test and removes every listener afterwards.
    """
    rec = PubRecorder()
    yield rec
    pub.unsubAll()


@pytest.fixture
def make_controller(fake_stack, dispatcher):
    """
    Factory for controllers wired to the fake stack and the inline dispatcher.

    Defaults keep both timers far in the future so unit tests only see the
    events they drive by hand; pass shorter intervals to exercise the timers.
    """
    created: List[ConnectionController] = []

    def _make(**kwargs):
        kwargs.setdefault("dispatcher", dispatcher)
        kwargs.setdefault("reconnect_policy", ReconnectPolicy.fixed(60.0))
        kwargs.setdefault("liveness_interval", 60.0)
        stack = kwargs.pop("stack", fake_stack)
        controller = ConnectionController(stack, **kwargs)
        created.append(controller)
        return controller

    yield _make
    for controller in created:
        controller.close()


@pytest.fixture
def zeble():
    """A peripheral that passes the default name filter."""
    return Peripheral("AA:BB:CC:DD:EE:01", "ZeBLE-01", rssi=-60)


@pytest.fixture
def other():
    """A second peripheral that passes the default name filter."""
    return Peripheral("AA:BB:CC:DD:EE:02", "ZeBLE-02", rssi=-70)
