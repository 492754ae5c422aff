"""Interface package exposing transport implementations."""

from .ble import *  # noqa: F403
from .ble import __all__ as _ble_all

__all__ = list(_ble_all)
