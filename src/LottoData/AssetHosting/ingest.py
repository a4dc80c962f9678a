# === NAVMAP v1 ===
# {
#   "module": "LottoData.AssetHosting.ingest",
#   "purpose": "Ingestion orchestrator: manifest -> fetch -> classify -> address -> store.",
#   "sections": [
#     {
#       "id": "assetrequest",
#       "name": "AssetRequest",
#       "anchor": "class-assetrequest",
#       "kind": "class"
#     },
#     {
#       "id": "ingestionoutcome",
#       "name": "IngestionOutcome",
#       "anchor": "class-ingestionoutcome",
#       "kind": "class"
#     },
#     {
#       "id": "ingestionstats",
#       "name": "IngestionStats",
#       "anchor": "class-ingestionstats",
#       "kind": "class"
#     },
#     {
#       "id": "ingestionorchestrator",
#       "name": "IngestionOrchestrator",
#       "anchor": "class-ingestionorchestrator",
#       "kind": "class"
#     },
#     {
#       "id": "coveragereport",
#       "name": "CoverageReport",
#       "anchor": "class-coveragereport",
#       "kind": "class"
#     },
#     {
#       "id": "host-entity-assets",
#       "name": "host_entity_assets",
#       "anchor": "function-host-entity-assets",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Ingestion orchestration for upstream images.

``ensure_hosted(source_url, key_template)`` is the single entry point scrapers
rely on. For one source URL it runs::

    validate URL
    └─ [per-source lock]
         ├─ manifest hit + same directory + head(key) exists → reuse (no download)
         ├─ fetch (per-host limited) → classify → address
         ├─ head(key) exists and only_missing → reuse stored object
         ├─ else put(key)
         └─ manifest.record(source_url, hosted)

Failures at any stage raise :class:`IngestionError` with the stage name and
the original exception chained. Batch helpers (:meth:`ensure_hosted_many`,
:func:`host_entity_assets`) catch those per asset, log a ``[rehost]`` line and
leave the entity's source URL in place.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from .addressing import address_for, key_template_for, template_directory
from .classifier import classify
from .config.models import IngestConfig
from .errors import (
    FetchError,
    IngestionError,
    RejectedSourceError,
    StorageError,
    UnsupportedFormat,
    describe_error,
)
from .fetcher import Fetcher
from .limits import KeyedLimiter, host_key
from .manifest import Manifest
from .snapshots.reconciler import entity_id
from .storage.base import HostedAsset, StorageProvider

__all__ = [
    "AssetRequest",
    "CoverageReport",
    "IngestionOrchestrator",
    "IngestionOutcome",
    "IngestionStats",
    "host_entity_assets",
]

LOGGER = logging.getLogger(__name__)

_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "0.0.0.0", "::1"})


@dataclass(frozen=True)
class AssetRequest:
    """One asset slot a scraper wants hosted."""

    source_url: str
    kind: str
    entity_id: str
    namespace: str

    @property
    def key_template(self) -> str:
        return key_template_for(self.namespace, self.entity_id, self.kind)


@dataclass
class IngestionOutcome:
    """Result of ingesting one :class:`AssetRequest`."""

    request: AssetRequest
    hosted: Optional[HostedAsset] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.hosted is not None

    @property
    def url(self) -> str:
        """Hosted URL on success, otherwise the original source URL."""
        return self.hosted.url if self.hosted is not None else self.request.source_url


@dataclass
class IngestionStats:
    """Counters for one run; safe to update from worker threads."""

    fetched: int = 0
    uploaded: int = 0
    manifest_hits: int = 0
    storage_hits: int = 0
    stale_entries: int = 0
    failed: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def bump(self, name: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)

    def as_dict(self) -> Dict[str, int]:
        with self._lock:
            return {
                "fetched": self.fetched,
                "uploaded": self.uploaded,
                "manifest_hits": self.manifest_hits,
                "storage_hits": self.storage_hits,
                "stale_entries": self.stale_entries,
                "failed": self.failed,
            }


class IngestionOrchestrator:
    """Tie fetcher, classifier, addresser, storage and manifest together."""

    def __init__(
        self,
        storage: StorageProvider,
        fetcher: Fetcher,
        manifest: Manifest,
        config: Optional[IngestConfig] = None,
    ):
        """Initialize orchestrator.

        Args:
            storage: Target provider (already wrapped for dry run if needed)
            fetcher: Source downloader
            manifest: Shared manifest, mutated in place
            config: Ingestion knobs
        """
        self.storage = storage
        self.fetcher = fetcher
        self.manifest = manifest
        self.config = config or IngestConfig()
        self.stats = IngestionStats()
        self._source_locks = KeyedLimiter(default_limit=1)
        self._host_limiter = KeyedLimiter(
            default_limit=self.config.per_host_limit or self.config.concurrency
        )

    # ------------------------------------------------------------------ #
    # Validation
    # ------------------------------------------------------------------ #

    def validate_source(self, source_url: str) -> None:
        """Reject URLs that must never be ingested.

        Raises:
            RejectedSourceError: Relative, non-HTTP, localhost (unless allowed)
                or outside ``allowed_hosts``.
        """
        try:
            parts = urlsplit(source_url)
        except ValueError as exc:
            raise RejectedSourceError(f"unparsable URL: {exc}", source_url=source_url) from exc
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise RejectedSourceError(
                "source URL must be absolute http(s)", source_url=source_url
            )
        host = parts.hostname.lower()
        if not self.config.allow_localhost and (host in _LOCAL_HOSTS or host.endswith(".localhost")):
            raise RejectedSourceError(
                f"refusing to ingest from local host {host}", source_url=source_url
            )
        if self.config.allowed_hosts and not any(
            host == suffix.lower().lstrip(".") or host.endswith("." + suffix.lower().lstrip("."))
            for suffix in self.config.allowed_hosts
        ):
            raise RejectedSourceError(
                f"host {host} is not an allowed upstream", source_url=source_url
            )

    # ------------------------------------------------------------------ #
    # Single asset
    # ------------------------------------------------------------------ #

    def ensure_hosted(self, source_url: str, key_template: str) -> HostedAsset:
        """Return the hosted asset for ``source_url``, ingesting it if needed.

        Raises:
            IngestionError: Every path failed; ``stage`` names the failing step.
        """
        self.validate_source(source_url)
        with self._source_locks.slot(source_url):
            reused = self._reuse_from_manifest(source_url, key_template)
            if reused is not None:
                return reused
            return self._ingest(source_url, key_template)

    def _reuse_from_manifest(self, source_url: str, key_template: str) -> Optional[HostedAsset]:
        if self.config.rehost_all:
            return None
        entry = self.manifest.get(source_url)
        if entry is None:
            return None

        directory = template_directory(key_template)
        if directory and not entry.key.startswith(directory):
            LOGGER.debug(
                f"[manifest] {source_url} cached under {entry.key}, wanted {directory}; re-ingesting"
            )
            return None

        if self.config.dry_run:
            self.stats.bump("manifest_hits")
            return entry.to_hosted()

        head = self.storage.head(entry.key)
        if head.exists:
            self.stats.bump("manifest_hits")
            LOGGER.debug(f"[manifest] hit {source_url} → {entry.key}")
            return entry.to_hosted()

        self.stats.bump("stale_entries")
        LOGGER.info(f"[manifest] stale entry for {source_url} ({entry.key} missing); re-ingesting")
        return None

    def _ingest(self, source_url: str, key_template: str) -> HostedAsset:
        try:
            with self._host_limiter.slot(host_key(source_url)):
                result = self.fetcher.fetch(source_url)
        except FetchError as exc:
            raise IngestionError(
                f"fetch failed for {source_url}: {exc}",
                source_url=source_url,
                stage="fetch",
                cause=exc,
            ) from exc
        self.stats.bump("fetched")

        try:
            content_type = classify(result.content, result.content_type)
            address = address_for(result.content, content_type, key_template)
        except UnsupportedFormat as exc:
            raise IngestionError(
                f"unsupported format for {source_url}: {exc}",
                source_url=source_url,
                stage="classify",
                cause=exc,
            ) from exc

        hosted: Optional[HostedAsset] = None
        if self.config.only_missing:
            head = self.storage.head(address.key)
            if head.exists:
                self.stats.bump("storage_hits")
                hosted = HostedAsset(
                    key=address.key,
                    url=self.storage.public_url_for(address.key),
                    content_type=content_type,
                    bytes=head.bytes if head.bytes is not None else len(result.content),
                    etag=head.etag,
                )
                LOGGER.debug(f"[rehost] {address.key} already stored; skipping upload")

        if hosted is None:
            try:
                hosted = self.storage.put(
                    address.key, result.content, content_type, self.config.cache_control
                )
            except StorageError as exc:
                raise IngestionError(
                    f"store failed for {source_url}: {exc}",
                    source_url=source_url,
                    stage="store",
                    cause=exc,
                ) from exc
            self.stats.bump("uploaded")

        self.manifest.record(source_url, hosted, address.sha256)
        return hosted

    # ------------------------------------------------------------------ #
    # Batches
    # ------------------------------------------------------------------ #

    def ensure_request(self, request: AssetRequest) -> IngestionOutcome:
        """Ingest one request, converting failures into an outcome."""
        try:
            hosted = self.ensure_hosted(request.source_url, request.key_template)
        except (IngestionError, ValueError) as exc:
            self.stats.bump("failed")
            LOGGER.warning(
                f"[rehost] game {request.entity_id} ({request.kind}) failed: {describe_error(exc)}"
            )
            return IngestionOutcome(request=request, error=exc)
        return IngestionOutcome(request=request, hosted=hosted)

    def ensure_hosted_many(self, requests: Sequence[AssetRequest]) -> List[IngestionOutcome]:
        """Ingest ``requests`` concurrently; outcomes keep the input order.

        Requests for the same entity and source URL are ingested once and the
        first result is shared with the other slots.
        """
        if not requests:
            return []

        unique: Dict[Tuple[str, str], AssetRequest] = {}
        for request in requests:
            unique.setdefault((request.entity_id, request.source_url), request)

        with ThreadPoolExecutor(
            max_workers=min(self.config.concurrency, len(unique)),
            thread_name_prefix="ingest",
        ) as pool:
            futures = {slot: pool.submit(self.ensure_request, req) for slot, req in unique.items()}
            resolved = {slot: future.result() for slot, future in futures.items()}

        outcomes: List[IngestionOutcome] = []
        for request in requests:
            first = resolved[(request.entity_id, request.source_url)]
            if first.request is request:
                outcomes.append(first)
            else:
                LOGGER.debug(
                    f"[rehost] game {request.entity_id} ({request.kind}) shares source with "
                    f"{first.request.kind}"
                )
                outcomes.append(IngestionOutcome(request=request, hosted=first.hosted, error=first.error))
        return outcomes


# ---------------------------------------------------------------------- #
# Entity-level helper
# ---------------------------------------------------------------------- #


@dataclass
class CoverageReport:
    """Per-kind hosting coverage for a batch of entities."""

    totals: Dict[str, int] = field(default_factory=dict)
    hosted: Dict[str, int] = field(default_factory=dict)
    failures: List[Tuple[str, str, str]] = field(default_factory=list)

    def add(self, kind: str, *, hosted: bool) -> None:
        self.totals[kind] = self.totals.get(kind, 0) + 1
        if hosted:
            self.hosted[kind] = self.hosted.get(kind, 0) + 1
        else:
            self.hosted.setdefault(kind, 0)

    @property
    def total(self) -> int:
        return sum(self.totals.values())

    @property
    def hosted_total(self) -> int:
        return sum(self.hosted.values())

    @property
    def ratio(self) -> float:
        """Hosted share across every slot; 1.0 when there are no slots."""
        if not self.total:
            return 1.0
        return self.hosted_total / self.total

    def summary_line(self) -> str:
        parts = []
        for kind in self.totals:
            total = self.totals[kind]
            done = self.hosted.get(kind, 0)
            pct = (100.0 * done / total) if total else 100.0
            parts.append(f"{kind}={done}/{total} ({pct:.0f}%)")
        return " ".join(parts)


def host_entity_assets(
    orchestrator: IngestionOrchestrator,
    entities: Sequence[MutableMapping[str, Any]],
    namespace: str,
    *,
    id_field: str = "gameNumber",
    asset_fields: Optional[Mapping[str, str]] = None,
) -> CoverageReport:
    """Host every asset field of ``entities`` and rewrite them in place.

    Each entity contributes one slot per ``asset_fields`` entry. Slots whose
    field is missing count as not hosted; slots already pointing into the
    provider's public space count as hosted without any work.

    Returns:
        Coverage per asset kind, with failure reasons.
    """
    fields = dict(asset_fields or orchestrator.config.asset_fields)
    report = CoverageReport()
    pending: List[Tuple[MutableMapping[str, Any], str, AssetRequest]] = []

    for entity in entities:
        ident = entity_id(entity, id_field)
        for kind, field_name in fields.items():
            source_url = entity.get(field_name)
            if ident is None or not isinstance(source_url, str) or not source_url.strip():
                report.add(kind, hosted=False)
                continue
            source_url = source_url.strip()
            if orchestrator.storage.is_hosted_url(source_url):
                report.add(kind, hosted=True)
                continue
            request = AssetRequest(
                source_url=source_url, kind=kind, entity_id=ident, namespace=namespace
            )
            pending.append((entity, field_name, request))

    outcomes = orchestrator.ensure_hosted_many([request for _, _, request in pending])
    for (entity, field_name, request), outcome in zip(pending, outcomes):
        report.add(request.kind, hosted=outcome.ok)
        if outcome.ok:
            entity[field_name] = outcome.url
        else:
            report.failures.append(
                (request.entity_id, request.kind, describe_error(outcome.error or Exception("unknown")))
            )

    LOGGER.info(f"[rehost] coverage {report.summary_line()}")
    return report
