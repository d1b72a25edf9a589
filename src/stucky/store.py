from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, List, Optional, TypeVar

from .events import BeforeStick, BeforeUnstick, EventBus, Stuck, Unstuck


logger = logging.getLogger(__name__)

OPTION_KEY = "stucky_posts"

T = TypeVar("T")


def absint(value: Any) -> int:
    """Coerce `value` to a non-negative int; anything unparseable becomes 0."""
    if isinstance(value, bool):
        return 0
    try:
        return abs(int(value))
    except (TypeError, ValueError, OverflowError):
        return 0


class StickyStore:
    """
    Membership set of featured item ids, persisted as one list option.

    The option store is the only source of truth: every call reads it again
    and every mutation rewrites the whole list. The store needs two methods:

    - `get(key)` -> stored value, or None when absent
    - `set(key, value)` -> True iff the stored value changed

    There is no locking. Two concurrent writers race and the last one wins.
    """

    def __init__(
        self,
        options: Any,
        *,
        bus: Optional[EventBus] = None,
        current_item_id: Optional[Callable[[], int]] = None,
        option_key: str = OPTION_KEY,
    ) -> None:
        self._options = options
        self.bus = bus or EventBus()
        self._current_item_id = current_item_id
        self._key = option_key

    def _load(self) -> Optional[List[Any]]:
        stickies = self._options.get(self._key)
        if stickies is None:
            return None
        if not isinstance(stickies, list):
            logger.warning(
                "Option %s holds %s, not a list; treating as empty",
                self._key,
                type(stickies).__name__,
            )
            return None
        return list(stickies)

    def _resolve(self, item_id: Any) -> int:
        item_id = absint(item_id)
        if not item_id and self._current_item_id is not None:
            item_id = absint(self._current_item_id())
        return item_id

    def is_sticky(self, item_id: Any = 0) -> bool:
        """Whether the item is featured.

        With no id (or 0), the current item id from the resolver is used.
        """
        item_id = self._resolve(item_id)
        stickies = self._load()
        if stickies is None:
            return False
        return item_id in stickies

    def stick(self, item_id: Any) -> bool:
        """Add the item to the featured list; returns whether storage changed."""
        item_id = absint(item_id)
        self.bus.publish(BeforeStick(item_id))

        stickies = self._load()
        if stickies is None:
            # Legacy behaviour: a missing or invalid list restarts as [item_id].
            stickies = [item_id]

        if item_id not in stickies:
            stickies.append(item_id)

        updated = bool(self._options.set(self._key, stickies))
        logger.debug("stick(%s) updated=%s", item_id, updated)
        if updated:
            self.bus.publish(Stuck(item_id))
        return updated

    def unstick(self, item_id: Any) -> bool:
        """Remove one occurrence of the item; returns whether storage changed."""
        item_id = absint(item_id)
        self.bus.publish(BeforeUnstick(item_id))

        stickies = self._load()
        if stickies is None or item_id not in stickies:
            return False

        del stickies[stickies.index(item_id)]

        updated = bool(self._options.set(self._key, stickies))
        logger.debug("unstick(%s) updated=%s", item_id, updated)
        if updated:
            self.bus.publish(Unstuck(item_id))
        return updated

    def get_stickies(self) -> List[Any]:
        return self._load() or []

    def sticky_first(
        self,
        items: Iterable[T],
        id_of: Callable[[T], Any] = lambda item: getattr(item, "id"),
    ) -> List[T]:
        """Reorder a listing so featured items come first.

        Both groups keep their original relative order.
        """
        stickies = {absint(s) for s in self.get_stickies()} - {0}
        pinned: List[T] = []
        rest: List[T] = []
        for item in items:
            (pinned if absint(id_of(item)) in stickies else rest).append(item)
        return pinned + rest
