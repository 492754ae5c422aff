"""Peripheral handles and the discovery set."""

from threading import RLock
from typing import Any, Dict, List, Optional, Tuple

from bleconnector.interfaces.ble.constants import UNKNOWN_DEVICE_NAME, logger
from bleconnector.interfaces.ble.utils import matches_name_filter


class Peripheral:
    """
    Opaque handle for a remote BLE device.

    Identity is the platform identifier alone; the name can change between
    advertisements and ``device`` is whatever object the radio stack needs to
    open a connection (a bleak ``BLEDevice`` in production).
    """

    __slots__ = ("identifier", "name", "rssi", "device")

    def __init__(
        self,
        identifier: str,
        name: Optional[str] = None,
        *,
        rssi: Optional[int] = None,
        device: Any = None,
    ):
        if not identifier:
            raise ValueError("Peripheral identifier must be a non-empty string")
        self.identifier = identifier
        self.name = name
        self.rssi = rssi
        self.device = device

    @property
    def display_name(self) -> str:
        return self.name or UNKNOWN_DEVICE_NAME

    def __eq__(self, other):
        if not isinstance(other, Peripheral):
            return NotImplemented
        return self.identifier == other.identifier

    def __hash__(self):
        return hash(self.identifier)

    def __repr__(self):
        return f"Peripheral(identifier={self.identifier!r}, name={self.name!r})"


class DiscoverySet:
    """
    Peripherals seen during the current scan window, keyed by identifier.

    Admission is decided by the name filter at insertion time; changing the
    filter clears the set so the new scan window starts empty.
    """

    def __init__(self, name_filter: Optional[str] = None):
        self._lock = RLock()
        self._peripherals: Dict[str, Peripheral] = {}
        self._name_filter = name_filter or None

    @property
    def name_filter(self) -> Optional[str]:
        with self._lock:
            return self._name_filter

    @name_filter.setter
    def name_filter(self, value: Optional[str]) -> None:
        with self._lock:
            self._name_filter = value or None
            self._peripherals.clear()

    def add(self, peripheral: Peripheral) -> bool:
        """
        Admit a peripheral if it matches the active filter.

        Parameters:
            peripheral (Peripheral): Handle reported by the radio stack.

        Returns:
            bool: True if the set changed (new identifier, or a known identifier
            gained/changed its name), False otherwise.
        """
        with self._lock:
            if not matches_name_filter(peripheral.name, self._name_filter):
                return False
            existing = self._peripherals.get(peripheral.identifier)
            if existing is None:
                self._peripherals[peripheral.identifier] = peripheral
                logger.debug("Discovered %r", peripheral)
                return True
            existing.rssi = peripheral.rssi
            if peripheral.device is not None:
                existing.device = peripheral.device
            if peripheral.name and peripheral.name != existing.name:
                existing.name = peripheral.name
                return True
            return False

    def get(self, identifier: str) -> Optional[Peripheral]:
        with self._lock:
            return self._peripherals.get(identifier)

    def clear(self) -> None:
        with self._lock:
            self._peripherals.clear()

    def snapshot(self) -> Tuple[Peripheral, ...]:
        with self._lock:
            return tuple(self._peripherals.values())

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            return identifier in self._peripherals

    def __len__(self) -> int:
        with self._lock:
            return len(self._peripherals)


def peripheral_from_advertisement(device: Any, adv: Any = None) -> Peripheral:
    """
    Build a Peripheral from a bleak ``BLEDevice`` and optional ``AdvertisementData``.

    The advertised local name wins over the cached device name, matching what
    a name filter should see.
    """
    local_name = getattr(adv, "local_name", None) if adv is not None else None
    rssi = getattr(adv, "rssi", None) if adv is not None else None
    return Peripheral(
        device.address,
        local_name or getattr(device, "name", None),
        rssi=rssi,
        device=device,
    )


def parse_scan_response(response: Any, name_filter: Optional[str] = None) -> List[Peripheral]:
    """
    Convert a ``BleakScanner.discover(return_adv=True)`` response into filtered peripherals.
    """
    discovered = DiscoverySet(name_filter)
    if response is None:
        logger.warning("BleakScanner.discover returned None")
        return []
    if not isinstance(response, dict):
        logger.warning(
            "BleakScanner.discover returned unexpected type: %s",
            type(response),
        )
        return []
    for _, value in response.items():
        if isinstance(value, tuple):
            device, adv = value
        else:
            logger.warning(
                "Unexpected return type from BleakScanner.discover: %s",
                type(value),
            )
            continue
        discovered.add(peripheral_from_advertisement(device, adv))
    return list(discovered.snapshot())
