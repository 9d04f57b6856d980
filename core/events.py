"""
Observer Primitives.

State managers publish snapshots through a Signal; UI adapters and other
consumers connect callbacks and keep the returned Subscription to disconnect.

Example:
    changed = Signal("cart")
    subscription = changed.connect(lambda cart: print(cart.total))
    changed.emit(snapshot)
    subscription.unsubscribe()
"""

import logging
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription:
    """Handle returned by Signal.connect(); calling it disconnects the listener."""

    def __init__(self, signal: "Signal", callback: Callable):
        self._signal = signal
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self):
        """Disconnect the listener. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self._signal._disconnect(self._callback)

    def __call__(self):
        self.unsubscribe()


class Signal(Generic[T]):
    """
    A minimal synchronous event emitter.

    Listeners are invoked in registration order with the emitted value. The
    listener list is copied before dispatch, so listeners may unsubscribe
    themselves (or others) while an emit is in progress. A failing listener is
    logged and does not prevent the remaining listeners from running.
    """

    def __init__(self, name: str = "signal"):
        self.name = name
        self._listeners: List[Callable[[T], None]] = []

    def connect(self, callback: Callable[[T], None]) -> Subscription:
        """Register a listener and return its subscription handle."""
        self._listeners.append(callback)
        return Subscription(self, callback)

    def _disconnect(self, callback: Callable[[T], None]):
        # Remove a single registration; the same callable may be connected twice
        for index, listener in enumerate(self._listeners):
            if listener is callback:
                del self._listeners[index]
                return

    def emit(self, value: T):
        """Dispatch a value to every connected listener."""
        for listener in list(self._listeners):
            # Skip listeners disconnected by an earlier listener in this dispatch
            if not any(current is listener for current in self._listeners):
                continue
            try:
                listener(value)
            except Exception:
                logger.exception(f"Listener on '{self.name}' signal raised")

    def __len__(self) -> int:
        return len(self._listeners)
