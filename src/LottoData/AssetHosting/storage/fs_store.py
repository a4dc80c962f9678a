"""Filesystem storage provider (development fallback).

Objects are written under ``<base_dir>/<key>`` and served by whatever static
server exposes ``base_dir``; URLs are synthesised from a configured public
base. A ``<file>.headers.json`` sidecar records the Content-Type and
Cache-Control the cloud backends would have set.

Directory Structure:
    public/cdn/
        ga/scratchers/images/1234/ticket-<sha>.png
        ga/scratchers/images/1234/ticket-<sha>.png.headers.json
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import Optional

from ..errors import StorageError
from ..io_utils import atomic_write_bytes, atomic_write_json
from .base import (
    DEFAULT_CACHE_CONTROL,
    MISSING,
    HeadResult,
    HostedAsset,
    StorageProvider,
    normalize_base_url,
)

logger = logging.getLogger(__name__)

HEADERS_SUFFIX = ".headers.json"


def normalize_key(key: str) -> str:
    """Strip leading slashes, unify separators and reject traversal."""
    cleaned = key.replace("\\", "/").lstrip("/")
    parts = PurePosixPath(cleaned).parts
    if not parts or any(part in ("..", ".") for part in parts):
        raise ValueError(f"Invalid storage key: {key!r}")
    return "/".join(parts)


class FilesystemStorageProvider(StorageProvider):
    """Local directory backend with synthesised public URLs."""

    name = "fs"

    def __init__(self, base_dir: str = "public/cdn", public_base: str = "http://localhost:3000/cdn"):
        """Initialize filesystem provider.

        Args:
            base_dir: Directory that receives objects
            public_base: URL prefix under which ``base_dir`` is served
        """
        self.base_dir = Path(base_dir)
        self.public_base = normalize_base_url(public_base)
        logger.debug(f"Filesystem storage initialized: {self.base_dir} -> {self.public_base}")

    def _path_for(self, key: str) -> Path:
        return self.base_dir / normalize_key(key)

    def public_url_for(self, key: str) -> str:
        if not key:
            return f"{self.public_base}/"
        return f"{self.public_base}/{normalize_key(key)}"

    def head(self, key: str) -> HeadResult:
        try:
            path = self._path_for(key)
            stat = path.stat()
        except (OSError, ValueError):
            return MISSING
        if not path.is_file():
            return MISSING
        return HeadResult(exists=True, bytes=stat.st_size)

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        cache_control: str = DEFAULT_CACHE_CONTROL,
    ) -> HostedAsset:
        try:
            normalized = normalize_key(key)
            path = self._path_for(normalized)
            atomic_write_bytes(str(path), data)
            atomic_write_json(
                f"{path}{HEADERS_SUFFIX}",
                {"Content-Type": content_type, "Cache-Control": cache_control},
            )
        except (OSError, ValueError) as exc:
            raise StorageError(
                f"filesystem write failed for {key}: {exc}", backend=self.name, key=key
            ) from exc

        url = self.public_url_for(normalized)
        logger.info(f"[fs] put {normalized} ({len(data)} bytes, {content_type}) → {url}")
        return HostedAsset(key=normalized, url=url, content_type=content_type, bytes=len(data))

    def get(self, key: str) -> Optional[bytes]:
        try:
            return self._path_for(key).read_bytes()
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as exc:
            raise StorageError(
                f"filesystem read failed for {key}: {exc}",
                backend=self.name,
                key=key,
                operation="get",
            ) from exc
