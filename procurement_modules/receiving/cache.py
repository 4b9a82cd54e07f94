"""
Scoped cache for sibling form resources.

Item types, cost-code configurations, estimates and the like are loaded
once per (corporation, project[, estimate]) scope and reused by the forms
that need them. The cache is passed explicitly to whoever uses it and is
cleared with explicit ``invalidate`` calls.

Fulfillment data (receipt notes, return-note items) is never cached here;
the ledger always recomputes from freshly loaded notes.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from procurement_kernel.domain.clock import Clock, SystemClock
from procurement_kernel.logging_config import get_logger

logger = get_logger("modules.receiving.cache")


@dataclass(frozen=True)
class ResourceScope:
    """Cache key prefix: one corporation and project, optionally one estimate."""

    corporation_id: str
    project_id: str
    estimate_id: str | None = None

    def __str__(self) -> str:
        parts = [self.corporation_id, self.project_id]
        if self.estimate_id is not None:
            parts.append(self.estimate_id)
        return "/".join(parts)


@dataclass(frozen=True)
class _Entry:
    value: Any
    loaded_at: datetime


class ScopedResourceCache:
    """
    Thread-safe cache keyed by (ResourceScope, resource name).

    Args:
        ttl_seconds: Entries older than this are reloaded. None keeps
            entries until invalidated.
        clock: Time source for expiry.
    """

    def __init__(self, ttl_seconds: int | None = None, clock: Clock | None = None):
        self._entries: dict[tuple[ResourceScope, str], _Entry] = {}
        self._lock = threading.Lock()
        self._ttl = timedelta(seconds=ttl_seconds) if ttl_seconds is not None else None
        self._clock = clock or SystemClock()

    def _fresh(self, entry: _Entry) -> bool:
        return self._ttl is None or self._clock.now() - entry.loaded_at < self._ttl

    def get(self, scope: ResourceScope, resource: str) -> Any | None:
        with self._lock:
            entry = self._entries.get((scope, resource))
            if entry is None or not self._fresh(entry):
                return None
            return entry.value

    def put(self, scope: ResourceScope, resource: str, value: Any) -> None:
        with self._lock:
            self._entries[(scope, resource)] = _Entry(value, self._clock.now())

    def get_or_load(self, scope: ResourceScope, resource: str, loader: Callable[[], Any]) -> Any:
        """
        Cached value, or the loader's result (which is then cached).

        The loader runs outside the lock. Loader exceptions propagate and
        nothing is cached.
        """
        with self._lock:
            entry = self._entries.get((scope, resource))
            if entry is not None and self._fresh(entry):
                logger.debug("resource_cache_hit", extra={"scope": str(scope), "resource": resource})
                return entry.value

        logger.debug("resource_cache_miss", extra={"scope": str(scope), "resource": resource})
        value = loader()
        self.put(scope, resource, value)
        return value

    def invalidate(self, scope: ResourceScope, resource: str | None = None) -> int:
        """Drop one resource, or every resource of the scope. Returns the count dropped."""
        with self._lock:
            if resource is not None:
                keys = [(scope, resource)] if (scope, resource) in self._entries else []
            else:
                keys = [key for key in self._entries if key[0] == scope]
            for key in keys:
                del self._entries[key]
        logger.info("resource_cache_invalidated", extra={
            "scope": str(scope),
            "resource": resource,
            "dropped": len(keys),
        })
        return len(keys)

    def invalidate_corporation(self, corporation_id: str) -> int:
        """Drop every entry of every scope of ``corporation_id``."""
        with self._lock:
            keys = [key for key in self._entries if key[0].corporation_id == corporation_id]
            for key in keys:
                del self._entries[key]
        logger.info("resource_cache_corporation_invalidated", extra={
            "corporation_id": corporation_id,
            "dropped": len(keys),
        })
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
