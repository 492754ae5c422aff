"""
Example demonstrating a long-running consumer of a BLE sensor peripheral.

The controller owns the whole connection lifecycle:
- It scans for peripherals whose advertised name contains the filter text
- It connects to the requested peripheral and subscribes to its notifications
- When the link drops it resumes scanning and retries every few seconds
- A periodic liveness check catches drops the radio stack never reported

The application only listens to pubsub topics; it never reconnects by hand.
"""
import argparse
import logging
import threading

from pubsub import pub

from bleconnector.ble_connector import (
    BleakStack,
    ConnectionController,
    ReconnectPolicy,
    TOPIC_CONNECTION_STATUS,
    TOPIC_DATA_RECEIVED,
    TOPIC_DISCOVERY_CHANGED,
)

logger = logging.getLogger(__name__)

# Set once the requested peripheral shows up in the discovery set
target_found = threading.Event()


def on_status(status, peripheral):
    """Log every connection status change."""
    logger.info("Status: %s", status)


def on_data(text, peripheral):
    """Print each received payload with the name of the peripheral that sent it."""
    print(f"{peripheral.display_name if peripheral else '?'}: {text}")


def main():
    """
    Connect to one peripheral and stream its data until Ctrl-C.

    The function:
    - Parses the peripheral identifier and optional name filter
    - Starts scanning and waits until the identifier is discovered
    - Connects once; reconnects after a drop are automatic
    """
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(
        description="BLE connector automatic reconnection example."
    )
    parser.add_argument("identifier", help="The BLE address/identifier of your peripheral.")
    parser.add_argument("--filter", default="ZeBLE", help="Advertised name filter.")
    parser.add_argument(
        "--interval", type=float, default=3.0, help="Seconds between reconnect attempts."
    )
    args = parser.parse_args()

    def on_discovery(peripherals):
        if any(p.identifier == args.identifier for p in peripherals):
            target_found.set()

    pub.subscribe(on_status, TOPIC_CONNECTION_STATUS)
    pub.subscribe(on_data, TOPIC_DATA_RECEIVED)
    pub.subscribe(on_discovery, TOPIC_DISCOVERY_CHANGED)

    with ConnectionController(
        BleakStack(),
        name_filter=args.filter,
        reconnect_policy=ReconnectPolicy.fixed(args.interval),
    ) as controller:
        try:
            controller.start_scan()
            logger.info("Scanning for %s...", args.identifier)
            target_found.wait()
            controller.connect(args.identifier)
            threading.Event().wait()
        except KeyboardInterrupt:
            logger.info("Exiting...")
        except ConnectionController.BLEError:
            logger.exception("Connection failed")


if __name__ == "__main__":
    main()
