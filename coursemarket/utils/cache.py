"""
Key-value cache with TTLs used for coupon previews, cart totals and
coupon read views.

The cache is never the source of truth. Keys:
- coupon:{coupon_id}                          coupon detail view
- coupons:*                                   coupon list views
- coupon_validation:{CODE}:{user}:{cart}      validation answers
- cart_coupon:{user}                          coupon preview on a cart
- cart_totals:{user}                          cart totals view
- idempotency:{path}:{user}:{key}            stored redeem answers

Two backends: an in-process store (default, also used by the tests) and
Redis when CACHE_URL points at one.
"""
from __future__ import annotations

import fnmatch
import json
import threading
import time
from typing import Any, Dict, Iterable, Optional

import redis

from coursemarket.core.config import settings


class Cache:
    def get_json(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set_json(self, key: str, value: Any, ttl: int) -> None:
        raise NotImplementedError

    def delete(self, *keys: str) -> None:
        raise NotImplementedError

    def invalidate(self, patterns: Iterable[str]) -> int:
        """Drop every key matching any glob pattern; returns how many went."""
        raise NotImplementedError


class MemoryCache(Cache):
    def __init__(self, max_entries: int = 4096):
        self.max_entries = max_entries
        self._store: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get_json(self, key):
        with self._lock:
            item = self._store.get(key)
            if not item:
                return None
            if item["exp"] < time.time():
                self._store.pop(key, None)
                return None
            return json.loads(item["body"])

    def set_json(self, key, value, ttl):
        body = json.dumps(value, default=str)
        with self._lock:
            if key not in self._store and len(self._store) >= self.max_entries:
                self._store.pop(next(iter(self._store)))
            self._store[key] = {"body": body, "exp": time.time() + ttl}

    def delete(self, *keys):
        with self._lock:
            for k in keys:
                self._store.pop(k, None)

    def invalidate(self, patterns):
        pats = list(patterns)
        with self._lock:
            doomed = [k for k in self._store if any(fnmatch.fnmatchcase(k, p) for p in pats)]
            for k in doomed:
                self._store.pop(k, None)
        return len(doomed)

    def ttl(self, key: str) -> Optional[float]:
        with self._lock:
            item = self._store.get(key)
            return None if not item else item["exp"] - time.time()

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


class RedisCache(Cache):
    def __init__(self, url: str):
        self.client = redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )

    def get_json(self, key):
        raw = self.client.get(key)
        return json.loads(raw) if raw else None

    def set_json(self, key, value, ttl):
        self.client.set(key, json.dumps(value, default=str), ex=int(ttl))

    def delete(self, *keys):
        if keys:
            self.client.delete(*keys)

    def invalidate(self, patterns):
        removed = 0
        for pattern in patterns:
            if not any(ch in pattern for ch in "*?["):
                removed += int(self.client.delete(pattern) or 0)
                continue
            batch = list(self.client.scan_iter(match=pattern, count=500))
            if batch:
                removed += int(self.client.delete(*batch) or 0)
        return removed


_cache: Optional[Cache] = None
_guard = threading.Lock()


def get_cache() -> Cache:
    """FastAPI dependency / process-wide cache selected by CACHE_URL."""
    global _cache
    with _guard:
        if _cache is None:
            _cache = RedisCache(settings.cache_url) if settings.cache_url else MemoryCache()
        return _cache
