"""
# A library for connecting to BLE sensor peripherals

Scans for peripherals advertising a name that matches a filter, connects to
one, subscribes to its notification characteristic, and reconnects
automatically when the link drops.

Received payloads and status changes are published with pypubsub:

- bleconnector.data.received(text, peripheral)
- bleconnector.connection.status(status, peripheral)
- bleconnector.discovery.changed(peripherals)

    from pubsub import pub
    from bleconnector.ble_connector import BleakStack, ConnectionController

    def on_data(text, peripheral):
        print(peripheral.display_name, text)

    pub.subscribe(on_data, "bleconnector.data.received")
    controller = ConnectionController(BleakStack())
    controller.start_scan()
"""

from bleconnector.ble_connector import (
    BLEConfig,
    BLEError,
    BleakStack,
    ConnectionController,
    ConnectionState,
    Peripheral,
)

__version__ = "0.1.0"

__all__ = [
    "BLEConfig",
    "BLEError",
    "BleakStack",
    "ConnectionController",
    "ConnectionState",
    "Peripheral",
    "__version__",
]
