"""Short-lived response cache shared by geocoding sessions."""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Callable

from ...models.domain import Coordinate

logger = logging.getLogger(__name__)

_MISSING = object()


class GeocodeCache:
    """TTL cache keyed by normalized query string.

    Not-found answers are cached too so a typo is not re-sent upstream on
    every keystroke pause. Oldest entries are evicted once `max_entries` is
    reached.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 2048,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, Coordinate | None]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Coordinate | None | object:
        """Return the cached value, or the module sentinel when absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return _MISSING
        stored_at, value = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return _MISSING
        self._entries.move_to_end(key)
        logger.debug(f"Geocode cache hit for '{key}'")
        return value

    def put(self, key: str, value: Coordinate | None) -> None:
        if self.ttl_seconds <= 0:
            return
        self._entries[key] = (self._clock(), value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()


def is_miss(value: object) -> bool:
    return value is _MISSING
