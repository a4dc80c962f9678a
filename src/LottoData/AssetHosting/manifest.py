# === NAVMAP v1 ===
# {
#   "module": "LottoData.AssetHosting.manifest",
#   "purpose": "Persistent source URL -> hosted asset cache shared across runs.",
#   "sections": [
#     {
#       "id": "manifestentry",
#       "name": "ManifestEntry",
#       "anchor": "class-manifestentry",
#       "kind": "class"
#     },
#     {
#       "id": "manifest",
#       "name": "Manifest",
#       "anchor": "class-manifest",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Manifest of previously hosted assets, keyed by *source* URL.

File format (``_image_manifest.json``)::

    {
      "https://www.galottery.com/.../1234_ticket.png": {
        "key": "ga/scratchers/images/1234/ticket-<sha>.png",
        "url": "https://storage.googleapis.com/<bucket>/ga/scratchers/images/...",
        "etag": "…",            # optional
        "bytes": 48211,
        "contentType": "image/png",
        "sha256": "<sha>"
      }
    }

Lifecycle: loaded at process start (local file, merged with the remote mirror
when one exists), mutated in memory as assets are ingested, saved once at the
end of the run. A malformed file is treated as an empty manifest and invalid
entries are dropped individually; neither ever aborts a run.

Concurrency: all mutation goes through an internal lock, so ingestion workers
may call :meth:`Manifest.record` directly.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, ClassVar, Dict, Iterator, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ManifestError, StorageError
from .io_utils import atomic_write_json
from .publish import put_json_object
from .storage.base import HostedAsset, StorageProvider

__all__ = ["ManifestEntry", "Manifest"]

logger = logging.getLogger(__name__)


class ManifestEntry(BaseModel):
    """One hosted asset remembered for a source URL."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore", populate_by_name=True, frozen=True
    )

    key: str = Field(min_length=1)
    url: str = Field(min_length=1)
    etag: Optional[str] = None
    bytes: int = Field(ge=0)
    content_type: str = Field(alias="contentType")
    sha256: str = Field(pattern=r"^[0-9a-f]{64}$")

    @classmethod
    def from_hosted(cls, hosted: HostedAsset, sha256: str) -> "ManifestEntry":
        return cls(
            key=hosted.key,
            url=hosted.url,
            etag=hosted.etag,
            bytes=hosted.bytes,
            content_type=hosted.content_type,
            sha256=sha256,
        )

    def to_hosted(self) -> HostedAsset:
        return HostedAsset(
            key=self.key,
            url=self.url,
            content_type=self.content_type,
            bytes=self.bytes,
            etag=self.etag,
        )

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Manifest:
    """Thread-safe ``source_url -> ManifestEntry`` map."""

    def __init__(self, entries: Optional[Mapping[str, ManifestEntry]] = None):
        self._entries: Dict[str, ManifestEntry] = dict(entries or {})
        self._lock = threading.Lock()
        self._dirty = False

    # ------------------------------------------------------------------ #
    # Map operations
    # ------------------------------------------------------------------ #

    def get(self, source_url: str) -> Optional[ManifestEntry]:
        with self._lock:
            return self._entries.get(source_url)

    def record(self, source_url: str, hosted: HostedAsset, sha256: str) -> ManifestEntry:
        """Remember ``hosted`` as the current asset for ``source_url``."""
        entry = ManifestEntry.from_hosted(hosted, sha256)
        with self._lock:
            if self._entries.get(source_url) != entry:
                self._entries[source_url] = entry
                self._dirty = True
        return entry

    def discard(self, source_url: str) -> None:
        with self._lock:
            if self._entries.pop(source_url, None) is not None:
                self._dirty = True

    def merge(self, other: "Manifest") -> int:
        """Adopt entries from ``other`` for source URLs this manifest lacks.

        Returns:
            Number of entries added
        """
        added = 0
        for source_url, entry in other.items():
            with self._lock:
                if source_url not in self._entries:
                    self._entries[source_url] = entry
                    added += 1
        return added

    def items(self) -> Iterator[Tuple[str, ManifestEntry]]:
        with self._lock:
            snapshot = list(self._entries.items())
        return iter(snapshot)

    @property
    def dirty(self) -> bool:
        return self._dirty

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, source_url: object) -> bool:
        with self._lock:
            return source_url in self._entries

    # ------------------------------------------------------------------ #
    # Serialisation
    # ------------------------------------------------------------------ #

    def to_json(self) -> Dict[str, Any]:
        with self._lock:
            return {url: entry.to_json() for url, entry in sorted(self._entries.items())}

    @classmethod
    def from_json(cls, data: Any, *, origin: str = "manifest") -> "Manifest":
        """Build a manifest from decoded JSON, dropping anything malformed."""
        if not isinstance(data, dict):
            logger.warning(f"[manifest] {origin} is not a JSON object; starting empty")
            return cls()

        entries: Dict[str, ManifestEntry] = {}
        dropped = 0
        for source_url, raw in data.items():
            if not isinstance(source_url, str) or not source_url:
                dropped += 1
                continue
            try:
                entries[source_url] = ManifestEntry.model_validate(raw)
            except ValidationError:
                dropped += 1
        if dropped:
            logger.warning(f"[manifest] dropped {dropped} invalid entries from {origin}")
        return cls(entries)

    @classmethod
    def from_bytes(cls, payload: bytes, *, origin: str = "manifest") -> "Manifest":
        try:
            data = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning(f"[manifest] {origin} is not valid JSON ({exc}); starting empty")
            return cls()
        return cls.from_json(data, origin=origin)

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    @classmethod
    def load(cls, path: str) -> "Manifest":
        """Load from ``path``; a missing or unreadable file yields an empty manifest."""
        target = Path(path)
        try:
            payload = target.read_bytes()
        except FileNotFoundError:
            logger.info(f"[manifest] no manifest at {path}; starting empty")
            return cls()
        except OSError as exc:
            logger.warning(f"[manifest] cannot read {path} ({exc}); starting empty")
            return cls()
        manifest = cls.from_bytes(payload, origin=path)
        logger.info(f"[manifest] loaded {len(manifest)} entries from {path}")
        return manifest

    def save(self, path: str) -> int:
        """Atomically write the manifest to ``path``.

        Raises:
            ManifestError: If the file cannot be written.
        """
        try:
            written = atomic_write_json(path, self.to_json())
        except OSError as exc:
            raise ManifestError(f"failed to save manifest to {path}: {exc}") from exc
        self._dirty = False
        logger.info(f"[manifest] saved {len(self)} entries to {path}")
        return written

    @classmethod
    def load_from_remote(cls, storage: StorageProvider, key: str) -> "Manifest":
        """Load the mirrored manifest object; absence or failure yields empty."""
        try:
            payload = storage.get(key)
        except StorageError as exc:
            logger.warning(f"[manifest] remote mirror {key} unreadable ({exc}); ignoring")
            return cls()
        if payload is None:
            logger.info(f"[manifest] no remote mirror at {key}")
            return cls()
        manifest = cls.from_bytes(payload, origin=f"remote:{key}")
        logger.info(f"[manifest] loaded {len(manifest)} entries from remote {key}")
        return manifest

    def save_to_remote(self, storage: StorageProvider, key: str) -> HostedAsset:
        """Mirror the manifest to ``key`` with ``Cache-Control: no-store``.

        Raises:
            StorageError: If the backend rejects the write.
        """
        return put_json_object(storage, key, self.to_json())

    def stats(self) -> Dict[str, Any]:
        """Summary used by the ``manifest-stats`` command."""
        with self._lock:
            entries = list(self._entries.values())
        by_type: Dict[str, int] = {}
        for entry in entries:
            by_type[entry.content_type] = by_type.get(entry.content_type, 0) + 1
        return {
            "entries": len(entries),
            "unique_keys": len({entry.key for entry in entries}),
            "total_bytes": sum(entry.bytes for entry in entries),
            "by_content_type": by_type,
        }
