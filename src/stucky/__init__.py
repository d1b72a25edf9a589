"""
Featured ("stuck") content for any content type.

Modules:
- store: membership set of stuck item ids, persisted under one option key
- events: typed lifecycle events and the synchronous event bus
- hooks: submit-box checkbox and save-time integration
"""

from .events import BeforeRender, BeforeSave, BeforeStick, BeforeUnstick, EventBus, Stuck, Unstuck
from .store import OPTION_KEY, StickyStore, absint

__all__ = [
    "OPTION_KEY",
    "StickyStore",
    "absint",
    "EventBus",
    "BeforeRender",
    "BeforeSave",
    "BeforeStick",
    "BeforeUnstick",
    "Stuck",
    "Unstuck",
]
