"""BLE connection package."""

from bleak import BleakScanner, BLEDevice

from bleconnector.interfaces.ble.constants import (
    BLEAK_VERSION,
    BLECLIENT_ERROR_ASYNC_TIMEOUT,
    BLEConfig,
    CHARACTERISTIC_UUID,
    DEFAULT_NAME_FILTER,
    DISCONNECT_TIMEOUT_SECONDS,
    ERROR_CONTROLLER_CLOSED,
    ERROR_UNKNOWN_PERIPHERAL,
    EVENT_THREAD_JOIN_TIMEOUT,
    SERVICE_UUID,
    UNKNOWN_DEVICE_NAME,
    logger,
)
from bleconnector.interfaces.ble.client import BLEClient
from bleconnector.interfaces.ble.controller import ConnectionController
from bleconnector.interfaces.ble.coordination import RepeatingTimer, ThreadCoordinator
from bleconnector.interfaces.ble.datalog import ReceivedDataLog
from bleconnector.interfaces.ble.deferred import DeferredExecution
from bleconnector.interfaces.ble.discovery import (
    DiscoverySet,
    Peripheral,
    parse_scan_response,
    peripheral_from_advertisement,
)
from bleconnector.interfaces.ble.errors import BLEError, BLEErrorHandler
from bleconnector.interfaces.ble.notifications import NotificationManager
from bleconnector.interfaces.ble.policies import ReconnectPolicy, RetryPolicy
from bleconnector.interfaces.ble.publishing import (
    ControllerSnapshot,
    EventPublisher,
    TOPIC_CONNECTION_STATUS,
    TOPIC_DATA_RECEIVED,
    TOPIC_DISCOVERY_CHANGED,
)
from bleconnector.interfaces.ble.reconnection import LivenessMonitor, ReconnectScheduler
from bleconnector.interfaces.ble.stack import BLEStack, BleakStack
from bleconnector.interfaces.ble.state import BLEStateManager, ConnectionState
from bleconnector.interfaces.ble.utils import (
    decode_payload,
    matches_name_filter,
    sanitize_address,
)

__all__ = [
    # Core classes
    "BLEConfig",
    "ConnectionState",
    "BLEStateManager",
    "ThreadCoordinator",
    "RepeatingTimer",
    "DeferredExecution",
    "BLEError",
    "BLEErrorHandler",
    "ReconnectPolicy",
    "RetryPolicy",
    "BLEClient",
    "Peripheral",
    "DiscoverySet",
    "ReceivedDataLog",
    "EventPublisher",
    "ControllerSnapshot",
    "NotificationManager",
    "ReconnectScheduler",
    "LivenessMonitor",
    "BLEStack",
    "BleakStack",
    "ConnectionController",
    "BleakScanner",
    "BLEDevice",
    # Constants/helpers
    "SERVICE_UUID",
    "CHARACTERISTIC_UUID",
    "DEFAULT_NAME_FILTER",
    "UNKNOWN_DEVICE_NAME",
    "DISCONNECT_TIMEOUT_SECONDS",
    "EVENT_THREAD_JOIN_TIMEOUT",
    "BLEAK_VERSION",
    "BLECLIENT_ERROR_ASYNC_TIMEOUT",
    "ERROR_CONTROLLER_CLOSED",
    "ERROR_UNKNOWN_PERIPHERAL",
    "TOPIC_CONNECTION_STATUS",
    "TOPIC_DATA_RECEIVED",
    "TOPIC_DISCOVERY_CHANGED",
    "decode_payload",
    "matches_name_filter",
    "parse_scan_response",
    "peripheral_from_advertisement",
    "sanitize_address",
    "logger",
]
