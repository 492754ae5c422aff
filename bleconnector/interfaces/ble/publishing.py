"""Observable controller state published over pypubsub."""

from typing import Optional, Tuple, TYPE_CHECKING

from pubsub import pub

from bleconnector.interfaces.ble.constants import logger

if TYPE_CHECKING:
    from bleconnector.interfaces.ble.discovery import Peripheral
    from bleconnector.interfaces.ble.state import ConnectionState

TOPIC_DATA_RECEIVED = "bleconnector.data.received"
TOPIC_CONNECTION_STATUS = "bleconnector.connection.status"
TOPIC_DISCOVERY_CHANGED = "bleconnector.discovery.changed"


class ControllerSnapshot:
    """Plain, immutable view of the controller state for UI consumers."""

    __slots__ = ("peripherals", "status", "state", "active_peripheral", "received")

    def __init__(
        self,
        peripherals: Tuple["Peripheral", ...],
        status: str,
        state: "ConnectionState",
        active_peripheral: Optional["Peripheral"],
        received: Tuple[str, ...],
    ):
        self.peripherals = peripherals
        self.status = status
        self.state = state
        self.active_peripheral = active_peripheral
        self.received = received

    def __repr__(self):
        return (
            f"ControllerSnapshot(status={self.status!r}, "
            f"peripherals={len(self.peripherals)}, received={len(self.received)})"
        )


class EventPublisher:
    """
    Send controller events to pypubsub listeners.

    Listener failures are logged and swallowed here: a broken UI subscriber
    must not interrupt the controller's event thread.
    """

    def data_received(self, text: str, peripheral: Optional["Peripheral"]) -> None:
        self._send(TOPIC_DATA_RECEIVED, text=text, peripheral=peripheral)

    def connection_status(self, status: str, peripheral: Optional["Peripheral"]) -> None:
        self._send(TOPIC_CONNECTION_STATUS, status=status, peripheral=peripheral)

    def discovery_changed(self, peripherals: Tuple["Peripheral", ...]) -> None:
        self._send(TOPIC_DISCOVERY_CHANGED, peripherals=peripherals)

    @staticmethod
    def _send(topic: str, **message) -> None:
        try:
            pub.sendMessage(topic, **message)
        except Exception:  # noqa: BLE001
            logger.exception("Error publishing %s", topic)
