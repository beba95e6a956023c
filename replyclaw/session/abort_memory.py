"""Bounded fallback for abort flags when no session store is configured."""

from __future__ import annotations

import time
from collections import OrderedDict


class AbortMemory:
    """LRU cache of abort flags keyed by sender/recipient, with expiry."""

    def __init__(self, max_entries: int = 1000, ttl_seconds: float = 24 * 3600):
        self.max_entries = max(1, int(max_entries))
        self.ttl_seconds = max(1.0, float(ttl_seconds))
        self._entries: OrderedDict[str, tuple[bool, float]] = OrderedDict()

    def get(self, key: str) -> bool:
        item = self._entries.get(key)
        if item is None:
            return False
        value, stored_at = item
        if time.monotonic() - stored_at > self.ttl_seconds:
            self._entries.pop(key, None)
            return False
        return value

    def set(self, key: str, value: bool) -> None:
        self._entries[key] = (bool(value), time.monotonic())
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def __len__(self) -> int:
        return len(self._entries)
