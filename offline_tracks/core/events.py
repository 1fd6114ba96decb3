"""
A minimal synchronous publish/subscribe channel.

Controllers, downloaders and playback engines each own an `EventEmitter`;
observers such as the `PlaybackCoordinator` subscribe to the named events they
care about instead of relying on any ambient propagation mechanism.
"""

from collections.abc import Callable
from typing import Any

Callback = Callable[..., Any]


class EventEmitter:
    """Dispatches named events to subscribers, in subscription order."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callback]] = {}

    def subscribe(self, event: str, callback: Callback) -> Callable[[], None]:
        """
        Registers a callback for an event.

        Returns:
            A function that removes this subscription when called.
        """
        self._subscribers.setdefault(event, []).append(callback)
        return lambda: self.unsubscribe(event, callback)

    def unsubscribe(self, event: str, callback: Callback) -> bool:
        """Removes a callback. Returns False if it was not subscribed."""
        callbacks = self._subscribers.get(event)
        if not callbacks or callback not in callbacks:
            return False
        callbacks.remove(callback)
        return True

    def subscriber_count(self, event: str) -> int:
        return len(self._subscribers.get(event, ()))

    def emit(self, event: str, *args: Any) -> None:
        """Invokes every subscriber of `event` synchronously with `args`."""
        # Copy so callbacks may unsubscribe while being dispatched
        for callback in list(self._subscribers.get(event, ())):
            callback(*args)
