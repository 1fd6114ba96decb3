"""
Keeps at most one track playing among a group of controllers.
"""

import logging
from collections.abc import Callable, Iterator

from .controller import TrackController

log = logging.getLogger(__name__)


class PlaybackCoordinator:
    """
    Listens for `play` notifications from the controllers it is given and pauses
    the previously playing one.

    The coordinator does not own the controllers' lifetimes; it only subscribes to
    their events and remembers which one is currently playing.
    """

    def __init__(self, controllers: list[TrackController] | None = None):
        self.current: TrackController | None = None
        self._subscriptions: dict[TrackController, Callable[[], None]] = {}
        for controller in controllers or ():
            self.add(controller)

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __iter__(self) -> Iterator[TrackController]:
        return iter(list(self._subscriptions))

    def __contains__(self, controller: object) -> bool:
        return controller in self._subscriptions

    def add(self, controller: TrackController) -> None:
        """Starts observing a controller. Adding it twice has no effect."""
        if controller in self._subscriptions:
            return
        self._subscriptions[controller] = controller.events.subscribe(
            "play", self._on_play
        )

    def remove(self, controller: TrackController) -> None:
        """Stops observing a controller, forgetting it if it was current."""
        unsubscribe = self._subscriptions.pop(controller, None)
        if unsubscribe is not None:
            unsubscribe()
        if self.current is controller:
            self.current = None

    def _on_play(self, controller: TrackController) -> None:
        if self.current is controller:
            return
        if self.current is not None:
            log.debug(f"Pausing '{self.current.key}' for '{controller.key}'.")
            self.current.pause()
        self.current = controller
