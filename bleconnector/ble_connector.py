# ruff: noqa: F401
"""The public API for the BLE connector."""

from .interfaces.ble.client import BLEClient
from .interfaces.ble.constants import BLEConfig, CHARACTERISTIC_UUID, SERVICE_UUID
from .interfaces.ble.controller import ConnectionController
from .interfaces.ble.discovery import Peripheral
from .interfaces.ble.errors import BLEError, BLEErrorHandler
from .interfaces.ble.policies import ReconnectPolicy, RetryPolicy
from .interfaces.ble.publishing import (
    ControllerSnapshot,
    TOPIC_CONNECTION_STATUS,
    TOPIC_DATA_RECEIVED,
    TOPIC_DISCOVERY_CHANGED,
)
from .interfaces.ble.stack import BLEStack, BleakStack
from .interfaces.ble.state import BLEStateManager, ConnectionState

__all__ = [
    "ConnectionController",
    "BLEStack",
    "BleakStack",
    "BLEClient",
    "BLEConfig",
    "BLEError",
    "BLEErrorHandler",
    "BLEStateManager",
    "ConnectionState",
    "ControllerSnapshot",
    "Peripheral",
    "ReconnectPolicy",
    "RetryPolicy",
    "SERVICE_UUID",
    "CHARACTERISTIC_UUID",
    "TOPIC_CONNECTION_STATUS",
    "TOPIC_DATA_RECEIVED",
    "TOPIC_DISCOVERY_CHANGED",
]
