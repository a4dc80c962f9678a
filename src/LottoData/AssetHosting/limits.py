# === NAVMAP v1 ===
# {
#   "module": "LottoData.AssetHosting.limits",
#   "purpose": "Thread-safe keyed limiters for per-source serialisation and per-host fairness",
#   "sections": [
#     {
#       "id": "host-key",
#       "name": "host_key",
#       "anchor": "function-host-key",
#       "kind": "function"
#     },
#     {
#       "id": "keyedlimiter",
#       "name": "KeyedLimiter",
#       "anchor": "class-keyedlimiter",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Keyed concurrency limiters for asset ingestion.

Two instances are used by the orchestrator:

    source_locks = KeyedLimiter(default_limit=1)            # one in-flight ingest per source URL
    host_limiter = KeyedLimiter(default_limit=per_host)     # cap fetches per upstream host

    with source_locks.slot(url):
        # manifest check → fetch → put → manifest record
        with host_limiter.slot(host_key(url)):
            fetcher.fetch(url)

Serialising by source URL makes the manifest read-check-write sequence atomic
for workers racing on the same upstream image, so the second worker observes
the first one's manifest entry instead of downloading again.

Entries for idle keys are dropped on release, so dynamic keys (one per source
URL) never accumulate for the lifetime of a run.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional
from urllib.parse import urlsplit

__all__ = ["KeyedLimiter", "host_key"]

logger = logging.getLogger(__name__)


class _SemaphoreEntry:
    """Semaphore plus the number of threads holding or waiting on it."""

    def __init__(self, limit: int):
        self.semaphore = threading.Semaphore(limit)
        self.users = 0


def host_key(url: str) -> str:
    """Extract normalized host (with port) from a URL for keying.

    Args:
        url: Full URL (e.g., "https://www.galottery.com:443/img/1.png")

    Returns:
        Host key (e.g., "www.galottery.com:443"); the URL itself if unparsable
    """
    try:
        host = urlsplit(url).netloc.lower()
    except ValueError as e:
        logger.warning(f"Failed to extract host key from {url}: {e}")
        return url
    if not host:
        logger.warning(f"Failed to extract host key from {url}: empty netloc")
        return url
    return host


class KeyedLimiter:
    """Thread-safe keyed semaphore.

    Example:
        >>> limiter = KeyedLimiter(default_limit=2, per_key={"www.galottery.com": 1})
        >>> with limiter.slot("www.galottery.com"):
        ...     pass
    """

    def __init__(self, default_limit: int, per_key: Optional[Dict[str, int]] = None) -> None:
        """Initialize keyed limiter.

        Args:
            default_limit: Concurrency limit for keys without an override
            per_key: Optional per-key overrides
        """
        self.default_limit = max(1, default_limit)
        self.per_key = dict(per_key or {})
        self._entries: Dict[str, _SemaphoreEntry] = {}
        self._mutex = threading.Lock()

        logger.debug(f"KeyedLimiter initialized: default_limit={default_limit}, per_key={per_key}")

    def acquire(self, key: str) -> None:
        """Acquire a slot for ``key``, blocking while its limit is reached."""
        with self._mutex:
            entry = self._entries.get(key)
            if entry is None:
                entry = _SemaphoreEntry(self.get_limit(key))
                self._entries[key] = entry
            entry.users += 1
        entry.semaphore.acquire()

    def release(self, key: str) -> None:
        """Release a slot for ``key``.

        Raises:
            KeyError: If ``key`` is not currently held
        """
        with self._mutex:
            entry = self._entries.get(key)
            if entry is None:
                logger.error("Attempted to release unknown limiter key '%s'", key)
                raise KeyError(f"No semaphore tracked for key={key!r}")
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]
            entry.semaphore.release()

    @contextmanager
    def slot(self, key: str) -> Iterator[None]:
        """Hold a slot for ``key`` for the duration of the ``with`` block."""
        self.acquire(key)
        try:
            yield
        finally:
            self.release(key)

    def get_limit(self, key: str) -> int:
        return self.per_key.get(key, self.default_limit)

    def active_keys(self) -> int:
        """Number of keys currently held or awaited."""
        with self._mutex:
            return len(self._entries)
