"""BLE constants and configuration."""

import importlib.metadata
import logging
from typing import Optional

logger = logging.getLogger("bleconnector.ble")

# Installed bleak version, logged when the stack starts
BLEAK_VERSION = importlib.metadata.version("bleak")

# BLE Service and Characteristic UUIDs (16-bit 0xFFF0 / 0xFFF1 expanded to 128-bit)
SERVICE_UUID = "0000fff0-0000-1000-8000-00805f9b34fb"
CHARACTERISTIC_UUID = "0000fff1-0000-1000-8000-00805f9b34fb"

DEFAULT_NAME_FILTER = "ZeBLE"
UNKNOWN_DEVICE_NAME = "Unknown Device"

# Timeout constants
DISCONNECT_TIMEOUT_SECONDS = 5.0
EVENT_THREAD_JOIN_TIMEOUT = 2.0


class BLEConfig:
    """Configuration constants for BLE operations."""

    SERVICE_UUID = SERVICE_UUID
    CHARACTERISTIC_UUID = CHARACTERISTIC_UUID
    DEFAULT_NAME_FILTER = DEFAULT_NAME_FILTER
    RECONNECT_INTERVAL = 3.0
    LIVENESS_CHECK_INTERVAL = 5.0
    BLE_SCAN_TIMEOUT = 10.0
    CONNECTION_TIMEOUT = 60.0
    GATT_IO_TIMEOUT = 10.0
    NOTIFICATION_START_TIMEOUT: Optional[float] = 10.0
    DISCONNECT_TIMEOUT_SECONDS = DISCONNECT_TIMEOUT_SECONDS
    EVENT_THREAD_JOIN_TIMEOUT = EVENT_THREAD_JOIN_TIMEOUT
    BLECLIENT_EVENT_THREAD_JOIN_TIMEOUT = 2.0


# Error message constants
ERROR_UNKNOWN_PERIPHERAL = (
    "No BLE peripheral with identifier '{0}' has been discovered. Scan first."
)
ERROR_CONTROLLER_CLOSED = "Connection controller has been closed"
ERROR_SERVICE_NOT_FOUND = "Service {0} not found on {1}"
ERROR_CHARACTERISTIC_NOT_FOUND = "Characteristic {0} not found on {1}"
BLECLIENT_ERROR_ASYNC_TIMEOUT = "Async operation timed out"

__all__ = [
    "BLEAK_VERSION",
    "BLECLIENT_ERROR_ASYNC_TIMEOUT",
    "BLEConfig",
    "CHARACTERISTIC_UUID",
    "DEFAULT_NAME_FILTER",
    "DISCONNECT_TIMEOUT_SECONDS",
    "ERROR_CHARACTERISTIC_NOT_FOUND",
    "ERROR_CONTROLLER_CLOSED",
    "ERROR_SERVICE_NOT_FOUND",
    "ERROR_UNKNOWN_PERIPHERAL",
    "EVENT_THREAD_JOIN_TIMEOUT",
    "SERVICE_UUID",
    "UNKNOWN_DEVICE_NAME",
    "logger",
]
