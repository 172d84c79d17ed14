"""Expiring key-value store.

Architecture:
    A Cabinet is a named dict of entries ``{"value": ..., "expires": epoch_ms}``
    with ``expires == 0`` meaning "never". Expiry is enforced lazily on read
    and eagerly by synchronize(), which also flushes surviving entries to the
    backing store of EPHEMERAL and PERSISTENT cabinets.

    Synchronization is debounced: every mutation reschedules one pending flush
    through a Stopwatch, so a burst of writes produces a single store write
    once the cabinet settles.

See Also:
    - CabinetStore: persistence protocol (MemoryStore, FileStore)
    - APIClient: keeps response and endpoint caches in a Cabinet
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from ..core.enums import CacheType
from ..utils.stopwatch import Stopwatch
from .stores import SESSION_STORE, CabinetStore, FileStore

logger = logging.getLogger(__name__)


def _now_ms() -> float:
    return time.time() * 1000


class Cabinet:
    """Named TTL cache with optional persistence."""

    # Cabinets opened through the factory constructors, by name
    open_cabinets: dict[str, Cabinet] = {}

    def __init__(
        self,
        name: str,
        data: dict[str, Any] | None = None,
        cache_type: CacheType = CacheType.LOCAL,
        *,
        store: CabinetStore | None = None,
        sync_delay: float = 0.25,
        clock: Callable[[], float] = _now_ms,
    ) -> None:
        self.name = name
        self.data: dict[str, dict[str, Any]] = data if data is not None else {}
        self.cache_type = cache_type
        self._clock = clock
        self._store = store
        if self._store is None and cache_type == CacheType.EPHEMERAL:
            self._store = SESSION_STORE
        self.synchronizer: Stopwatch | None = None
        if cache_type != CacheType.LOCAL and self._store is not None:
            self.synchronizer = Stopwatch.later(self.synchronize, sync_delay)

    # --- Factories -----------------------------------------------------------

    @classmethod
    def local(cls, name: str) -> Cabinet:
        """Memory-only cabinet, shared by name."""
        if name in cls.open_cabinets:
            return cls.open_cabinets[name]
        cabinet = cls(name, {}, CacheType.LOCAL)
        cls.open_cabinets[name] = cabinet
        return cabinet

    @classmethod
    def ephemeral(
        cls, name: str, store: CabinetStore | None = None, sync_delay: float = 0.25
    ) -> Cabinet:
        """Cabinet flushed to the process-lifetime store, shared by name."""
        return cls._open(name, CacheType.EPHEMERAL, store or SESSION_STORE, sync_delay)

    @classmethod
    def persistent(cls, name: str, directory: str | Path, sync_delay: float = 0.25) -> Cabinet:
        """Cabinet flushed to a JSON file in ``directory``, shared by name."""
        return cls._open(name, CacheType.PERSISTENT, FileStore(directory), sync_delay)

    @classmethod
    def _open(
        cls, name: str, cache_type: CacheType, store: CabinetStore, sync_delay: float
    ) -> Cabinet:
        if name in cls.open_cabinets:
            return cls.open_cabinets[name]
        cabinet = cls(name, {}, cache_type, store=store, sync_delay=sync_delay)
        try:
            content = store.load(name)
        except (OSError, ValueError) as e:
            logger.warning("Could not load cabinet %s from its store: %s", name, e)
            content = None
        if content:
            cabinet.data = content
        cls.open_cabinets[name] = cabinet
        return cabinet

    @classmethod
    def close_all(cls) -> None:
        cls.open_cabinets.clear()

    # --- Access --------------------------------------------------------------

    def get(self, key: str, default: Any = None, ignore_expiry: bool = False) -> Any:
        """Value of ``key``, or ``default`` if missing or expired.

        Expired entries are deleted as they are read unless ``ignore_expiry``.
        """
        entry = self.data.get(key)
        if entry is None:
            return default
        if not ignore_expiry and self._is_expired(entry):
            del self.data[key]
            self._schedule_sync()
            return default
        return entry["value"]

    def exists(self, key: str) -> bool:
        return key in self.data

    def expired(self, key: str) -> bool:
        """True if ``key`` is missing or past its expiration."""
        entry = self.data.get(key)
        if entry is None:
            return True
        return self._is_expired(entry)

    def set(self, key: str, value: Any, ttl: float = 0) -> Cabinet:
        """Store ``value`` for ``ttl`` seconds (0 = indefinitely).

        Setting None deletes the key.
        """
        if value is None:
            return self.delete(key)
        expires = 0 if ttl == 0 else self._clock() + ttl * 1000
        self.data[key] = {"expires": expires, "value": value}
        self._schedule_sync()
        return self

    def delete(self, key: str) -> Cabinet:
        if key in self.data:
            del self.data[key]
            self._schedule_sync()
        return self

    def keys(self) -> list[str]:
        return list(self.data.keys())

    def _is_expired(self, entry: dict[str, Any]) -> bool:
        expires = entry.get("expires", 0)
        return expires > 0 and expires < self._clock()

    # --- Synchronization -----------------------------------------------------

    def _schedule_sync(self) -> None:
        if self.synchronizer is not None:
            self.synchronizer.reschedule()

    def synchronize(self) -> Cabinet:
        """Purge expired entries and flush the rest to the backing store."""
        for key in [k for k, entry in self.data.items() if self._is_expired(entry)]:
            del self.data[key]

        if self._store is not None and self.cache_type != CacheType.LOCAL:
            try:
                self._store.save(self.name, self.data)
            except (OSError, TypeError, ValueError) as e:
                logger.warning("Could not synchronize cabinet %s: %s", self.name, e)

        if self.synchronizer is not None:
            self.synchronizer.cancel()
        return self

    def destroy(self) -> None:
        """Discard all contents, including the backing store copy."""
        if self.synchronizer is not None:
            self.synchronizer.cancel()
        self.data.clear()
        if self._store is not None and self.cache_type != CacheType.LOCAL:
            try:
                self._store.remove(self.name)
            except OSError as e:
                logger.warning("Could not remove stored cabinet %s: %s", self.name, e)
