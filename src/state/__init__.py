"""
Option storage backends for the shared key/value configuration document.

Both stores expose the host contract used by the membership store:
`get(key) -> value | None` and `set(key, value) -> bool` (True iff the
stored value changed).
"""

from .memory_store import InMemoryOptionStore
from .models import Options

__all__ = ["InMemoryOptionStore", "Options"]
