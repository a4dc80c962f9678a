"""Storage provider interface and the value types it returns."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_CACHE_CONTROL = "public, max-age=31536000, immutable"


@dataclass(frozen=True)
class HostedAsset:
    """An object reachable at a public URL.

    Produced by a successful ``put`` or by a manifest/storage cache hit. A new
    content hash always yields a new key, so instances are never mutated.
    """

    key: str
    url: str
    content_type: str
    bytes: int
    etag: Optional[str] = None


@dataclass(frozen=True)
class HeadResult:
    """Outcome of an existence check. Absence is a normal result."""

    exists: bool
    etag: Optional[str] = None
    bytes: Optional[int] = None


MISSING = HeadResult(exists=False)


def strip_etag(value: Optional[str]) -> Optional[str]:
    """Remove the surrounding quotes object stores put on ETags."""
    if not value:
        return None
    return value.strip().strip('"') or None


def normalize_base_url(value: Optional[str]) -> str:
    """Strip whitespace and trailing slashes from a public base URL."""
    return (value or "").strip().rstrip("/")


class StorageProvider:
    """Protocol-like base class for hosted-object backends.

    Implementations must keep ``head`` exception-free, make ``put`` safe to
    repeat for an existing key, and compute ``public_url_for`` without I/O.
    """

    name: str = "abstract"

    def head(self, key: str) -> HeadResult:
        """Return existence, ETag and size of ``key``; never raises."""
        raise NotImplementedError

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        cache_control: str = DEFAULT_CACHE_CONTROL,
    ) -> HostedAsset:
        """Store ``data`` under ``key`` (overwriting) and return the hosted asset.

        Raises:
            StorageError: If the backend rejects the write.
        """
        raise NotImplementedError

    def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes for ``key`` or ``None`` when absent.

        Used for small JSON objects (manifest mirror, published index).

        Raises:
            StorageError: On backend failures other than absence.
        """
        raise NotImplementedError

    def public_url_for(self, key: str) -> str:
        """Return the public URL for ``key``. Pure and synchronous."""
        raise NotImplementedError

    def is_hosted_url(self, url: str) -> bool:
        """Return True when ``url`` already points into this provider's public space."""
        base = self.public_url_for("")
        return bool(base) and url.startswith(base)

    def close(self) -> None:
        """Release client resources (no-op by default)."""
        return None
