"""Identifier resolution cache scoped to one remote API session.

Maps (entity type, natural key) to a resolved remote identifier so repeated
cross-reference lookups within a session skip the remote round trip.

DESIGN:
- Entries are immutable and carry their own expiration
- Reads never mutate state and treat expired entries as absent
- Writes and the periodic sweep take the write lock
- The sweep runs as its own asyncio task with its own stop signal, so the
  owning session can shut it down independently of in-flight reconciliations
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

logger = logging.getLogger(__name__)

DEFAULT_EXPIRATION_SECONDS = 7 * 24 * 3600
DEFAULT_CLEANUP_INTERVAL_SECONDS = 30 * 60


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class CacheEntry:
    """A resolved identifier and the moment it stops being valid."""

    value: str
    expires_at: datetime

    def expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class IdentifierCache:
    """TTL cache of natural key -> remote identifier.

    Usage:
        cache = IdentifierCache()
        await cache.start()
        cache.add("domain", "acme", "d-123")
        value, found = cache.get("domain", "acme")
        await cache.stop()
    """

    def __init__(
        self,
        default_expiration_seconds: float = DEFAULT_EXPIRATION_SECONDS,
        cleanup_interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if default_expiration_seconds <= 0:
            raise ValueError("default_expiration_seconds must be positive")
        if cleanup_interval_seconds <= 0:
            raise ValueError("cleanup_interval_seconds must be positive")

        self._default_expiration = timedelta(seconds=default_expiration_seconds)
        self._cleanup_interval = cleanup_interval_seconds
        self._clock = clock
        self._entries: dict[tuple[str, str], CacheEntry] = {}
        self._write_lock = threading.Lock()
        self._stop_event: asyncio.Event | None = None
        self._sweeper: asyncio.Task[None] | None = None

    @property
    def default_expiration(self) -> timedelta:
        return self._default_expiration

    @property
    def running(self) -> bool:
        """Whether the background sweep task is active."""
        return self._sweeper is not None and not self._sweeper.done()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, entity_type: str, key: str) -> tuple[str, bool]:
        """Look up a cached identifier.

        Never resolves on a miss: the caller performs the remote lookup and
        calls add() on a unique match.

        Returns:
            Tuple of (value, found). value is "" when not found.
        """
        entry = self._entries.get((entity_type, key))
        if entry is None or entry.expired(self._clock()):
            return "", False
        return entry.value, True

    def add(self, entity_type: str, key: str, value: str, ttl_seconds: float = 0) -> None:
        """Store a resolved identifier.

        Args:
            entity_type: Remote entity type (e.g. "domain").
            key: Natural key within that type.
            value: Remote identifier.
            ttl_seconds: Lifetime; 0 uses the default expiration.
        """
        ttl = timedelta(seconds=ttl_seconds) if ttl_seconds else self._default_expiration
        entry = CacheEntry(value=value, expires_at=self._clock() + ttl)
        with self._write_lock:
            self._entries[(entity_type, key)] = entry

    def sweep(self) -> int:
        """Delete expired entries.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        with self._write_lock:
            expired = [k for k, entry in self._entries.items() if entry.expired(now)]
            for k in expired:
                del self._entries[k]

        if expired:
            logger.debug("Swept expired cache entries", extra={"removed": len(expired)})
        return len(expired)

    def clear(self) -> None:
        with self._write_lock:
            self._entries.clear()

    async def start(self) -> None:
        """Start the background sweep task on the running loop."""
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._sweeper = asyncio.create_task(self._run_cleanup(self._stop_event))

    async def stop(self) -> None:
        """Signal the sweep task to stop and wait for it."""
        if self._stop_event is None or self._sweeper is None:
            return
        self._stop_event.set()
        await self._sweeper
        self._sweeper = None
        self._stop_event = None

    async def _run_cleanup(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._cleanup_interval)
            except TimeoutError:
                self.sweep()
