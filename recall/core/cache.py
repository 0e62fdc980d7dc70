"""
TTL key/value cache for externally sourced reference data.

Cache stores are best effort: a failing store turns reads into misses and
writes into no-ops, it never fails the caller. Expiry is lazy, checked when
an entry is read. There is no locking; the last write wins.
"""

import json
import sqlite3
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

from .config import CACHE_NAMESPACE, CACHE_TTL_SEC
from .db import get_db, init_db
from util.logging import logger

COLLECTION_ID = "all"


class CacheUnavailable(Exception):
    """The underlying cache store could not be reached."""
    pass


class ICacheStore(ABC):
    """Abstract interface for a key/value store with per-key TTL."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if absent or expired."""
        pass

    @abstractmethod
    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value that expires ttl_seconds from now."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key; removing an absent key is not an error."""
        pass


class InMemoryCacheStore(ICacheStore):
    """Process-local cache store."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._entries: Dict[str, Tuple[str, float]] = {}  # key -> (value, expires_at)
        self._clock = clock

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class SQLiteCacheStore(ICacheStore):
    """Cache store persisted in the cache_entries table, shared across processes.

    An unreachable database does not fail construction; the schema is retried
    on each access and failures surface as CacheUnavailable.
    """

    def __init__(self, db_path: str = None, clock: Callable[[], float] = time.time):
        self.db_path = db_path
        self._clock = clock
        self._schema_ready = False
        try:
            self._ensure_schema()
        except (sqlite3.Error, OSError) as e:
            logger.log_operation("cache.init", "degraded", {"db_path": db_path, "error": str(e)})

    def _ensure_schema(self) -> None:
        if not self._schema_ready:
            init_db(self.db_path)
            self._schema_ready = True

    def get(self, key: str) -> Optional[str]:
        try:
            self._ensure_schema()
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT value, expires_at FROM cache_entries WHERE key = ?", (key,))
                row = cursor.fetchone()
                if row is None:
                    return None
                value, expires_at = row
                if self._clock() >= expires_at:
                    cursor.execute("DELETE FROM cache_entries WHERE key = ? AND expires_at = ?", (key, expires_at))
                    conn.commit()
                    return None
                return value
        except (sqlite3.Error, OSError) as e:
            raise CacheUnavailable(f"cache read failed: {e}") from e

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            self._ensure_schema()
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "INSERT OR REPLACE INTO cache_entries (key, value, expires_at) VALUES (?, ?, ?)",
                    (key, value, self._clock() + ttl_seconds)
                )
                conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise CacheUnavailable(f"cache write failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._ensure_schema()
            with get_db(self.db_path) as conn:
                cursor = conn.cursor()
                cursor.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
                conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise CacheUnavailable(f"cache delete failed: {e}") from e


def collection_key(kind: str) -> str:
    """Key of the cached "list all" result for a kind."""
    return f"{kind}:{COLLECTION_ID}"


def item_key(kind: str, identifier: str) -> str:
    """Key of one cached member of a kind."""
    return f"{kind}:{identifier}"


def split_key(key: str) -> Tuple[str, Optional[str]]:
    """Split "kind:identifier" into its parts; identifiers may contain colons."""
    kind, sep, identifier = key.partition(":")
    return kind, (identifier if sep else None)


class ReferenceDataCache:
    """
    Read-through TTL cache with member-to-collection invalidation.

    Keys are "kind:all" for a collection and "kind:<id>" for a member. All
    keys are namespaced before reaching the store. Values are anything JSON
    serializable; a None read means miss.
    """

    def __init__(self, store: ICacheStore, default_ttl: int = CACHE_TTL_SEC,
                 namespace: str = CACHE_NAMESPACE):
        self.store = store
        self.default_ttl = default_ttl
        self.namespace = namespace

    def _store_key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    def get(self, key: str) -> Optional[Any]:
        """Cached value for key, or None on miss, expiry or store failure."""
        try:
            raw = self.store.get(self._store_key(key))
        except Exception as e:
            logger.log_cache_operation("get", key, "degraded", {"error": str(e)})
            return None

        if raw is None:
            logger.log_cache_operation("get", key, "miss")
            return None

        try:
            value = json.loads(raw)
        except ValueError as e:
            logger.log_cache_operation("get", key, "degraded", {"error": f"undecodable entry: {e}"})
            return None

        logger.log_cache_operation("get", key, "hit")
        return value

    def put(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Cache value under key; failures are logged and ignored."""
        ttl_seconds = self.default_ttl if ttl is None else ttl
        try:
            self.store.put(self._store_key(key), json.dumps(value), ttl_seconds)
        except Exception as e:
            logger.log_cache_operation("put", key, "degraded", {"error": str(e)})
            return

        logger.log_cache_operation("put", key, "success", {"ttl": ttl_seconds})

    def invalidate(self, key: str) -> None:
        """
        Drop key. Dropping a member also drops its kind's collection entry,
        since a cached "list all" would now be stale. Dropping a collection
        leaves members alone.
        """
        keys = [key]
        kind, identifier = split_key(key)
        if identifier is not None and identifier != COLLECTION_ID:
            keys.append(collection_key(kind))

        for k in keys:
            try:
                self.store.delete(self._store_key(k))
            except Exception as e:
                logger.log_cache_operation("invalidate", k, "degraded", {"error": str(e)})
                continue
            logger.log_cache_operation("invalidate", k, "success")

    def read_through(self, key: str, fetch: Callable[[], Any], ttl: Optional[int] = None,
                     use_cache: bool = True) -> Any:
        """
        Return the cached value for key, or fetch, cache and return it.

        use_cache=False skips the read but still refreshes the entry.
        Exceptions from fetch propagate. A None result is returned uncached.
        """
        if use_cache:
            cached = self.get(key)
            if cached is not None:
                return cached

        value = fetch()
        if value is not None:
            self.put(key, value, ttl)
        return value
