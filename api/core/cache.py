"""
Small in-process TTL cache for expensive LLM-backed results.
"""

from __future__ import annotations

import hashlib
import json
import time
from typing import Any, Awaitable, Callable, TypeVar

T = TypeVar("T")


def cache_key(prefix: str, *parts: Any) -> str:
    raw = json.dumps(parts, sort_keys=True, ensure_ascii=True, default=str)
    return f"{prefix}_{hashlib.md5(raw.encode('utf-8')).hexdigest()}"


class TTLCache:
    def __init__(self, default_ttl_s: float = 3600.0, max_entries: int = 1024) -> None:
        self.default_ttl_s = default_ttl_s
        self.max_entries = max_entries
        self._entries: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= time.monotonic():
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any, ttl_s: float | None = None) -> None:
        if len(self._entries) >= self.max_entries:
            self._evict()
        ttl = self.default_ttl_s if ttl_s is None else ttl_s
        self._entries[key] = (time.monotonic() + ttl, value)

    def clear(self) -> None:
        self._entries.clear()

    def _evict(self) -> None:
        now = time.monotonic()
        for key in [k for k, (exp, _) in self._entries.items() if exp <= now]:
            self._entries.pop(key, None)
        # Still full: drop the entry closest to expiry.
        if len(self._entries) >= self.max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k][0])
            self._entries.pop(oldest, None)

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[T]],
        ttl_s: float | None = None,
    ) -> tuple[T, bool]:
        """
        Return `(value, from_cache)`; the factory runs only on a miss.
        """
        cached = self.get(key)
        if cached is not None:
            return cached, True
        value = await factory()
        self.set(key, value, ttl_s)
        return value, False
