"""Command line front end: list peripherals, or connect and stream received data."""

import argparse
import logging
import sys
import threading
from typing import Iterable, List, Optional

from pubsub import pub
from tabulate import tabulate

from bleconnector.interfaces.ble.constants import BLEConfig
from bleconnector.interfaces.ble.controller import ConnectionController
from bleconnector.interfaces.ble.discovery import Peripheral
from bleconnector.interfaces.ble.errors import BLEError
from bleconnector.interfaces.ble.policies import ReconnectPolicy
from bleconnector.interfaces.ble.publishing import (
    TOPIC_CONNECTION_STATUS,
    TOPIC_DATA_RECEIVED,
    TOPIC_DISCOVERY_CHANGED,
)
from bleconnector.interfaces.ble.stack import BleakStack
from bleconnector.interfaces.ble.utils import sanitize_address

logger = logging.getLogger(__name__)


def format_peripheral_table(peripherals: Iterable[Peripheral]) -> str:
    """Render peripherals as a table of name, identifier and RSSI, strongest signal first."""
    ordered = sorted(
        peripherals,
        key=lambda p: p.rssi if p.rssi is not None else -1000,
        reverse=True,
    )
    rows = [
        {
            "N": i + 1,
            "Name": p.display_name,
            "Identifier": p.identifier,
            "RSSI": p.rssi,
        }
        for i, p in enumerate(ordered)
    ]
    return tabulate(rows, headers="keys", missingval="N/A", tablefmt="fancy_grid")


def _name_filter(args: argparse.Namespace) -> Optional[str]:
    if args.no_filter:
        return ""
    return args.filter


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ble-connector",
        description="Scan for BLE peripherals, connect to one, and print the data it notifies.",
    )
    parser.add_argument("--debug", action="store_true", help="Show debug logging.")
    parser.add_argument(
        "--reconnect-interval",
        type=float,
        default=BLEConfig.RECONNECT_INTERVAL,
        help="Seconds between reconnect attempts (default: %(default)s).",
    )
    parser.add_argument(
        "--liveness-interval",
        type=float,
        default=BLEConfig.LIVENESS_CHECK_INTERVAL,
        help="Seconds between connection liveness checks (default: %(default)s).",
    )

    filter_parent = argparse.ArgumentParser(add_help=False)
    group = filter_parent.add_mutually_exclusive_group()
    group.add_argument(
        "--filter",
        default=BLEConfig.DEFAULT_NAME_FILTER,
        help="Only list peripherals whose name contains this text (default: %(default)s).",
    )
    group.add_argument(
        "--no-filter",
        action="store_true",
        help="List every peripheral regardless of name.",
    )

    sub = parser.add_subparsers(dest="command", required=True)
    scan = sub.add_parser("scan", parents=[filter_parent], help="List nearby peripherals.")
    scan.add_argument(
        "--timeout",
        type=float,
        default=BLEConfig.BLE_SCAN_TIMEOUT,
        help="Scan duration in seconds (default: %(default)s).",
    )
    connect = sub.add_parser(
        "connect",
        parents=[filter_parent],
        help="Connect and stream received data until interrupted.",
    )
    connect.add_argument(
        "--target",
        help="Identifier of the peripheral to connect to (default: first one found).",
    )
    return parser


def run_scan(args: argparse.Namespace, stack_class=BleakStack) -> int:
    peripherals = stack_class.scan(name_filter=_name_filter(args), timeout=args.timeout)
    if not peripherals:
        print("No BLE peripherals found.")
        return 1
    print(format_peripheral_table(peripherals))
    return 0


class ConsoleSession:
    """Print controller events and pick the connect target once it is discovered."""

    def __init__(self, target: Optional[str] = None):
        self.target = target
        self._target_key = sanitize_address(target)
        self.found = threading.Event()
        self.peripheral_id: Optional[str] = None

    def subscribe(self) -> None:
        pub.subscribe(self.on_status, TOPIC_CONNECTION_STATUS)
        pub.subscribe(self.on_data, TOPIC_DATA_RECEIVED)
        pub.subscribe(self.on_discovery, TOPIC_DISCOVERY_CHANGED)

    def unsubscribe(self) -> None:
        for listener, topic in (
            (self.on_status, TOPIC_CONNECTION_STATUS),
            (self.on_data, TOPIC_DATA_RECEIVED),
            (self.on_discovery, TOPIC_DISCOVERY_CHANGED),
        ):
            pub.unsubscribe(listener, topic)

    def on_status(self, status, peripheral):
        logger.info("Status: %s", status)

    def on_data(self, text, peripheral):
        name = peripheral.display_name if peripheral is not None else "?"
        print(f"[{name}] {text}", flush=True)

    def on_discovery(self, peripherals):
        if self.found.is_set():
            return
        for peripheral in peripherals:
            key = sanitize_address(peripheral.identifier)
            if self._target_key is None or key == self._target_key:
                logger.info("Found %s (%s)", peripheral.display_name, peripheral.identifier)
                self.peripheral_id = peripheral.identifier
                self.found.set()
                return


def run_connect(
    args: argparse.Namespace,
    stack=None,
    stop_event: Optional[threading.Event] = None,
) -> int:
    """Connect to the target and print received data until interrupted or `stop_event` is set."""
    session = ConsoleSession(args.target)
    session.subscribe()
    controller = ConnectionController(
        stack if stack is not None else BleakStack(),
        name_filter=_name_filter(args),
        reconnect_policy=ReconnectPolicy.fixed(args.reconnect_interval),
        liveness_interval=args.liveness_interval,
    )
    try:
        controller.start_scan()
        logger.info("Waiting for a peripheral... (Ctrl-C to quit)")
        stop = stop_event if stop_event is not None else threading.Event()
        while not session.found.wait(0.5):
            if stop.is_set():
                return 0
        assert session.peripheral_id is not None
        controller.connect(session.peripheral_id)
        # Reconnects are automatic; just keep the process alive.
        stop.wait()
    except KeyboardInterrupt:
        logger.info("Exiting...")
    except BLEError:
        logger.exception("Connection failed")
        return 1
    finally:
        controller.close()
        session.unsubscribe()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.reconnect_interval <= 0 or args.liveness_interval <= 0:
        parser.error("intervals must be greater than zero")
    if args.command == "scan":
        return run_scan(args)
    return run_connect(args)


if __name__ == "__main__":
    sys.exit(main())
