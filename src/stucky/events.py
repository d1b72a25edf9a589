from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, DefaultDict, List, Type


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BeforeStick:
    """Published before every stick attempt, whether or not it changes state."""

    item_id: int


@dataclass(frozen=True)
class Stuck:
    """Published once an item has been added to the featured list."""

    item_id: int


@dataclass(frozen=True)
class BeforeUnstick:
    item_id: int


@dataclass(frozen=True)
class Unstuck:
    """Published once an item has been removed from the featured list."""

    item_id: int


@dataclass(frozen=True)
class BeforeRender:
    """Published by the submit-box renderer before capability checks run."""

    item_id: int
    item: Any


@dataclass(frozen=True)
class BeforeSave:
    """Published by the save hook before capability checks run."""

    item_id: int
    item: Any
    update: bool


Handler = Callable[[Any], Any]


class EventBus:
    """
    Synchronous observer registry keyed by event type.

    - `subscribe(EventType, handler)` returns a callable that unsubscribes.
    - `publish(event)` calls handlers registered for `type(event)` in
      registration order. Return values are ignored; handler exceptions
      propagate to the publisher.
    """

    def __init__(self) -> None:
        self._handlers: DefaultDict[type, List[Handler]] = defaultdict(list)

    def subscribe(self, event_type: Type[Any], handler: Handler) -> Callable[[], None]:
        self._handlers[event_type].append(handler)

        def _unsubscribe() -> None:
            try:
                self._handlers[event_type].remove(handler)
            except ValueError:
                pass

        return _unsubscribe

    def publish(self, event: Any) -> None:
        handlers = list(self._handlers.get(type(event), ()))
        logger.debug("Publishing %r to %d handler(s)", event, len(handlers))
        for handler in handlers:
            handler(event)
