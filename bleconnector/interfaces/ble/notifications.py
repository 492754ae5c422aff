"""BLE notification subscription tracking."""

from threading import RLock
from typing import Any, Callable, Dict, Optional, Tuple

NotifyCallback = Callable[[Any, Any], None]


class NotificationManager:
    """
    Track characteristic notification subscriptions per peripheral.

    The stack consults this before starting notifications so a reconnect does
    not stack duplicate handlers, and drops a peripheral's entries when its
    link goes away.
    """

    def __init__(self):
        """
        Initialize a NotificationManager instance and its thread-safe subscription state.

        - _active_subscriptions: mapping from token to (peripheral id, characteristic, callback).
        - _subscription_counter: monotonic counter used to allocate unique subscription tokens.
        - _lock: RLock to synchronize access across the event loop and caller threads.
        """
        self._active_subscriptions: Dict[int, Tuple[str, str, NotifyCallback]] = {}
        self._subscription_counter = 0
        self._lock = RLock()

    def subscribe(
        self, peripheral_id: str, characteristic: str, callback: NotifyCallback
    ) -> int:
        """
        Register a characteristic notification callback for a peripheral.

        Parameters:
            peripheral_id (str): Identifier of the peripheral owning the characteristic.
            characteristic (str): UUID of the characteristic being subscribed to.
            callback (Callable[[Any, Any], None]): Function invoked with (sender, data).

        Returns:
            token (int): Opaque token that identifies the tracked subscription.
        """
        with self._lock:
            token = self._subscription_counter
            self._subscription_counter += 1
            self._active_subscriptions[token] = (peripheral_id, characteristic, callback)
            return token

    def get_callback(
        self, peripheral_id: str, characteristic: str
    ) -> Optional[NotifyCallback]:
        """Return the callback registered for `characteristic` on `peripheral_id`, if any."""
        with self._lock:
            for owner, uuid, callback in self._active_subscriptions.values():
                if owner == peripheral_id and uuid == characteristic:
                    return callback
            return None

    def unsubscribe_peripheral(self, peripheral_id: str) -> int:
        """Forget every subscription of `peripheral_id`; returns how many were removed."""
        with self._lock:
            tokens = [
                token
                for token, (owner, _, _) in self._active_subscriptions.items()
                if owner == peripheral_id
            ]
            for token in tokens:
                del self._active_subscriptions[token]
            return len(tokens)

    def cleanup_all(self) -> None:
        with self._lock:
            self._active_subscriptions.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._active_subscriptions)
