"""Utility functions for BLE operations."""

from typing import Optional

_ADDRESS_SEPARATORS = ("-", "_", ":", " ")
_PAYLOAD_TRAILERS = "\x00\r\n"


def sanitize_address(address: Optional[str]) -> Optional[str]:
    """
    Normalize a BLE address or identifier by removing common separators and lowercasing.

    Parameters:
        address (Optional[str]): Address or identifier to normalize; may be None or whitespace.

    Returns:
        Optional[str]: The normalized identifier, or `None` if `address` is None or only whitespace.
    """
    if address is None:
        return None
    stripped = address.strip()
    if not stripped:
        return None
    for separator in _ADDRESS_SEPARATORS:
        stripped = stripped.replace(separator, "")
    return stripped.lower()


def matches_name_filter(name: Optional[str], name_filter: Optional[str]) -> bool:
    """
    Decide whether an advertised name passes the discovery name filter.

    An empty or missing filter admits everything. With a filter set, only names
    containing the filter substring (case-sensitive) are admitted; peripherals
    that advertise no name never match.
    """
    if not name_filter:
        return True
    if not name:
        return False
    return name_filter in name


def decode_payload(data) -> str:
    """
    Decode a characteristic value into text.

    Parameters:
        data (bytes | bytearray | memoryview): Raw notification payload.

    Returns:
        str: The UTF-8 text with trailing NUL and newline characters removed.

    Raises:
        UnicodeDecodeError: If the payload is not valid UTF-8.
    """
    return bytes(data).decode("utf-8").rstrip(_PAYLOAD_TRAILERS)
