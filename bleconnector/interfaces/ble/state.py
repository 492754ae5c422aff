"""BLE connection state management."""

from enum import Enum
from threading import RLock
from typing import Optional, TYPE_CHECKING

from bleconnector.interfaces.ble.constants import logger

if TYPE_CHECKING:
    from bleconnector.interfaces.ble.discovery import Peripheral


class ConnectionState(Enum):
    """Enum for managing BLE connection states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


# Define valid transitions based on connection lifecycle
_VALID_TRANSITIONS = {
    ConnectionState.DISCONNECTED: {
        ConnectionState.CONNECTING,
        ConnectionState.RECONNECTING,
        ConnectionState.FAILED,
    },
    ConnectionState.CONNECTING: {
        ConnectionState.CONNECTED,
        ConnectionState.DISCONNECTED,
        ConnectionState.FAILED,
    },
    ConnectionState.CONNECTED: {
        ConnectionState.DISCONNECTED,
        ConnectionState.FAILED,
    },
    ConnectionState.RECONNECTING: {
        ConnectionState.CONNECTED,
        ConnectionState.CONNECTING,
        ConnectionState.DISCONNECTED,
        ConnectionState.FAILED,
    },
    ConnectionState.FAILED: {
        ConnectionState.CONNECTING,
        ConnectionState.RECONNECTING,
        ConnectionState.DISCONNECTED,
    },
}


class BLEStateManager:
    """Thread-safe state management for the active BLE peripheral.

    A single state machine tracks the one peripheral that may be active at a
    time. The peripheral reference survives a drop to DISCONNECTED so the
    reconnect timer knows what to reconnect to; it is only cleared by
    :meth:`release`.
    """

    def __init__(self):
        """Initialize state manager with disconnected state."""
        self._state_lock = RLock()
        self._state = ConnectionState.DISCONNECTED
        self._peripheral: Optional["Peripheral"] = None

    @property
    def lock(self) -> RLock:
        """Expose the reentrant lock controlling state transitions."""
        return self._state_lock

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        with self._state_lock:
            return self._state

    @property
    def is_connected(self) -> bool:
        """Check if currently connected."""
        return self.state == ConnectionState.CONNECTED

    @property
    def is_connecting(self) -> bool:
        """Check if a connect request is in flight."""
        return self.state in (ConnectionState.CONNECTING, ConnectionState.RECONNECTING)

    @property
    def peripheral(self) -> Optional["Peripheral"]:
        """Get the active peripheral, if any."""
        with self._state_lock:
            return self._peripheral

    def is_active(self, peripheral_id: Optional[str]) -> bool:
        """Return True when `peripheral_id` identifies the active peripheral."""
        with self._state_lock:
            return (
                self._peripheral is not None
                and peripheral_id is not None
                and self._peripheral.identifier == peripheral_id
            )

    def transition_to(
        self, new_state: ConnectionState, peripheral: Optional["Peripheral"] = None
    ) -> bool:
        """Thread-safe state transition with validation.

        Args:
        ----
            new_state: Target state to transition to
            peripheral: Peripheral that becomes the active one (optional)

        Returns:
        -------
            True if transition was valid and applied, False otherwise

        """
        with self._state_lock:
            if not self._is_valid_transition(self._state, new_state):
                logger.warning(
                    "Invalid state transition: %s → %s",
                    self._state.value,
                    new_state.value,
                )
                return False
            old_state = self._state
            self._state = new_state
            if peripheral is not None:
                self._peripheral = peripheral
            logger.debug("State transition: %s → %s", old_state.value, new_state.value)
            return True

    def release(self) -> Optional["Peripheral"]:
        """Drop the active peripheral and force the DISCONNECTED state.

        Returns:
        -------
            The peripheral that was active, if any.

        """
        with self._state_lock:
            previous = self._peripheral
            self._peripheral = None
            if self._state != ConnectionState.DISCONNECTED:
                logger.debug(
                    "State transition: %s → %s (released)",
                    self._state.value,
                    ConnectionState.DISCONNECTED.value,
                )
                self._state = ConnectionState.DISCONNECTED
            return previous

    @staticmethod
    def _is_valid_transition(
        from_state: ConnectionState, to_state: ConnectionState
    ) -> bool:
        return to_state in _VALID_TRANSITIONS.get(from_state, set())
