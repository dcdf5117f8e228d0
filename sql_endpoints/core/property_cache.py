"""Case-insensitive property lookup over JSON-like request objects.

Each distinct source object gets a lower-cased name index built on the first
lookup that misses the exact-key fast path. The index is keyed by object
identity and never keeps the object itself alive; it remembers the key sequence
it was built from, so an identity reused by another object, or a mutated
object, never reads a stale index. When the cache is full it is cleared
wholesale before the next index is added; this keeps memory bounded without LRU
bookkeeping on the lookup path.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple

from .settings import MAX_CACHE_SIZE

_ABSENT = object()


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time cache counters."""

    size: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


@dataclass(frozen=True)
class _NameIndex:
    names: Dict[str, str]
    keys: Tuple[Any, ...]


class PropertyCache:
    """Thread-safe, bounded cache of case-insensitive name indexes."""

    def __init__(self, max_size: int = MAX_CACHE_SIZE):
        if max_size < 1:
            raise ValueError("max_size must be >= 1.")
        self._max_size = max_size
        self._entries: Dict[int, _NameIndex] = {}
        self._build_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @property
    def max_size(self) -> int:
        return self._max_size

    def lookup(self, obj: Any, name: str) -> Tuple[bool, Any]:
        """Return `(found, value)` for `name` matched case-insensitively.

        `found` separates an absent property from one explicitly set to null.
        Non-mapping objects and empty names are never found.
        """

        if not isinstance(obj, Mapping) or not name:
            return False, None

        value = obj.get(name, _ABSENT)
        if value is not _ABSENT:
            return True, value

        index = self._index_for(obj)
        actual = index.names.get(name.lower())
        if actual is None:
            return False, None
        value = obj.get(actual, _ABSENT)
        if value is _ABSENT:
            return False, None
        return True, value

    def get(self, obj: Any, name: str, default: Any = None) -> Any:
        found, value = self.lookup(obj, name)
        return value if found else default

    def get_str(self, obj: Any, name: str) -> Tuple[bool, Optional[str]]:
        found, value = self.lookup(obj, name)
        if not found or value is None or isinstance(value, (Mapping, list)):
            return False, None
        return True, str(value)

    def get_int(self, obj: Any, name: str) -> Tuple[bool, int]:
        found, value = self.lookup(obj, name)
        if not found or value is None or isinstance(value, bool):
            return False, 0
        try:
            return True, int(value)
        except (TypeError, ValueError):
            return False, 0

    def get_array(self, obj: Any, name: str) -> Tuple[bool, Optional[list]]:
        found, value = self.lookup(obj, name)
        if found and isinstance(value, list):
            return True, value
        return False, None

    def get_date(self, obj: Any, name: str) -> Tuple[bool, Optional[date]]:
        """Return a `date` or `datetime` read from a value or an ISO 8601 string."""

        found, value = self.lookup(obj, name)
        if not found or value is None:
            return False, None
        if isinstance(value, date):
            return True, value
        if not isinstance(value, str):
            return False, None
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            if len(text) == 10:
                return True, date.fromisoformat(text)
            return True, datetime.fromisoformat(text)
        except ValueError:
            return False, None

    def stats(self) -> CacheStats:
        with self._stats_lock:
            return CacheStats(size=len(self._entries), hits=self._hits, misses=self._misses)

    def clear(self) -> None:
        """Drop every index and reset the counters."""

        with self._build_lock:
            self._entries = {}
        with self._stats_lock:
            self._hits = 0
            self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def _index_for(self, obj: Mapping[str, Any]) -> _NameIndex:
        key = id(obj)
        keys = tuple(obj)

        entry = self._entries.get(key)
        if entry is not None and entry.keys == keys:
            self._count(hit=True)
            return entry

        with self._build_lock:
            entry = self._entries.get(key)
            if entry is not None and entry.keys == keys:
                self._count(hit=True)
                return entry

            names: Dict[str, str] = {}
            for prop in keys:
                if isinstance(prop, str):
                    names.setdefault(prop.lower(), prop)
            entry = _NameIndex(names=names, keys=keys)

            if key not in self._entries and len(self._entries) >= self._max_size:
                self._entries = {}
            self._entries[key] = entry
            self._count(hit=False)
            return entry

    def _count(self, *, hit: bool) -> None:
        with self._stats_lock:
            if hit:
                self._hits += 1
            else:
                self._misses += 1
