from __future__ import annotations

import copy
from typing import Any, Dict, Optional

from .models import Options


class InMemoryOptionStore:
    """Process-local option store, used for local runs and tests.

    Values are deep-copied on the way in and out so callers can never mutate
    stored state without going through `set`.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._options = Options(values=copy.deepcopy(initial or {}))
        self.writes = 0

    def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._options.get(key))

    def set(self, key: str, value: Any) -> bool:
        """Store `value`; returns False when it equals the current value."""
        if key in self._options.values and self._options.values[key] == value:
            return False
        self._options.values[key] = copy.deepcopy(value)
        self.writes += 1
        return True

    def snapshot(self) -> Options:
        return self._options.model_copy(deep=True)
