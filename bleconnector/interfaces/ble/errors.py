"""Error handling for BLE operations."""

from concurrent.futures import TimeoutError as FutureTimeoutError

from bleak.exc import BleakDBusError, BleakError

from bleconnector.interfaces.ble.constants import logger

__all__ = ["BLEError", "BLEErrorHandler"]


class BLEError(Exception):
    """An exception class for BLE errors."""


class BLEErrorHandler:
    """
    Helper class for consistent error handling in BLE operations.

    Every call into the radio stack goes through these helpers so that a
    failing callback is logged and absorbed at the boundary instead of
    unwinding the event thread.
    """

    @staticmethod
    def safe_execute(
        func,
        default_return=None,
        log_error: bool = True,
        error_msg: str = "Error in operation",
        reraise: bool = False,
    ):
        """
        Execute a zero-argument callable and return its result, falling back to a provided default on failure.

        Bleak errors and future timeouts are expected in normal operation and are
        logged at debug level; anything else is logged with a traceback.

        Parameters:
            func (callable): A zero-argument callable to execute.
            default_return: Value to return if execution fails.
            log_error (bool): If True, log caught exceptions.
            error_msg (str): Message prefix used when logging errors.
            reraise (bool): If True, re-raise any caught exception instead of returning default_return.

        Returns:
            The value returned by `func()` on success, or `default_return` if execution failed.
        """
        try:
            return func()
        except (BleakError, BleakDBusError, FutureTimeoutError, BLEError) as e:
            if log_error:
                logger.debug("%s: %s", error_msg, e)
            if reraise:
                raise
            return default_return
        except Exception:
            if log_error:
                logger.exception("%s", error_msg)
            if reraise:
                raise
            return default_return

    @staticmethod
    def safe_cleanup(func, cleanup_name: str = "cleanup operation"):
        """Safely execute cleanup operations without raising exceptions."""
        try:
            func()
        except Exception as e:  # noqa: BLE001
            logger.debug("Error during %s: %s", cleanup_name, e)
