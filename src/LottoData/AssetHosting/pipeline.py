# === NAVMAP v1 ===
# {
#   "module": "LottoData.AssetHosting.pipeline",
#   "purpose": "One hosting run: manifest load, asset hosting, guards, reconciliation, manifest save.",
#   "sections": [
#     {
#       "id": "pipelineresult",
#       "name": "PipelineResult",
#       "anchor": "class-pipelineresult",
#       "kind": "class"
#     },
#     {
#       "id": "load-manifest",
#       "name": "load_manifest",
#       "anchor": "function-load-manifest",
#       "kind": "function"
#     },
#     {
#       "id": "save-manifest",
#       "name": "save_manifest",
#       "anchor": "function-save-manifest",
#       "kind": "function"
#     },
#     {
#       "id": "run-pipeline",
#       "name": "run_pipeline",
#       "anchor": "function-run-pipeline",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""End-to-end hosting run for one scraper's entity list.

Order of operations::

    resolve storage ─► load manifest (local ∪ remote mirror)
        ─► host asset fields (bounded pool) ─► save manifest
        ─► run guards (fatal → RunGuardError)
        ─► reconcile snapshot (index + history, anti-truncation)

The manifest is saved before the guards run so uploads that already happened
are remembered even when the run is then failed. In dry-run mode nothing is
written except the local index files, which the reconciler writes as usual.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, MutableMapping, Optional, Sequence

from .browser import BrowserPool
from .config.models import HostingConfig
from .errors import StorageError
from .fetcher import Fetcher
from .guards import check_run_guards
from .ingest import CoverageReport, IngestionOrchestrator, host_entity_assets
from .manifest import Manifest
from .snapshots.reconciler import ReconcileResult, SnapshotReconciler
from .storage.base import HostedAsset, StorageProvider
from .storage.dry_run import DryRunStorageProvider
from .storage.selection import build_storage_provider, resolve_storage_config

__all__ = ["PipelineResult", "load_manifest", "save_manifest", "run_pipeline"]

LOGGER = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Everything a caller needs to summarise a run."""

    storage_name: str
    coverage: CoverageReport
    stats: Dict[str, int]
    warnings: List[str] = field(default_factory=list)
    reconcile: Optional[ReconcileResult] = None
    dry_run: bool = False
    intended_uploads: List[HostedAsset] = field(default_factory=list)
    manifest_entries: int = 0

    @property
    def guard_tripped(self) -> bool:
        return self.reconcile is not None and self.reconcile.guard_tripped


def load_manifest(config: HostingConfig, storage: StorageProvider) -> Manifest:
    """Load the local manifest and merge in the remote mirror, local winning."""
    manifest = Manifest.load(config.manifest.path)
    if config.manifest.remote_key:
        remote = Manifest.load_from_remote(storage, config.manifest.remote_key)
        added = manifest.merge(remote)
        if added:
            LOGGER.info(f"[manifest] adopted {added} entries from remote mirror")
    return manifest


def save_manifest(manifest: Manifest, config: HostingConfig, storage: StorageProvider) -> None:
    """Persist the manifest locally and to the remote mirror.

    Raises:
        ManifestError: The local file could not be written.
    """
    if config.ingest.dry_run:
        LOGGER.info(f"[dry-run] manifest not saved ({len(manifest)} entries)")
        return
    manifest.save(config.manifest.path)
    if config.manifest.remote_key:
        try:
            manifest.save_to_remote(storage, config.manifest.remote_key)
        except StorageError as exc:
            LOGGER.warning(f"[manifest] remote mirror update failed: {exc}")


def run_pipeline(
    entities: Sequence[MutableMapping[str, Any]],
    namespace: str,
    out_dir: str,
    config: Optional[HostingConfig] = None,
    *,
    storage: Optional[StorageProvider] = None,
    fetcher: Optional[Fetcher] = None,
    rows: Optional[int] = None,
    remote_prefix: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> PipelineResult:
    """Host the assets of ``entities`` and publish the reconciled snapshot.

    ``entities`` are rewritten in place: hosted asset fields receive their
    hosted URL, failed ones keep the source URL.

    Args:
        entities: Scraped records
        namespace: Key namespace (e.g. ``ga/scratchers/images``)
        out_dir: Directory for ``index.json`` and history
        config: Run configuration
        storage: Provider to use (default: resolved from ``env``)
        fetcher: Source downloader (default: built from ``config``)
        rows: Top-level rows the scraper parsed, for the zero-rows guard
        remote_prefix: Key prefix for the remote index copy
        env: Environment used for storage resolution

    Raises:
        RunGuardError: A fatal aggregate guard tripped.
        ManifestError: The manifest could not be saved.
    """
    config = config or HostingConfig()
    dry_run = config.ingest.dry_run

    owns_storage = storage is None
    if storage is None:
        storage = build_storage_provider(resolve_storage_config(env), dry_run=dry_run)
    elif dry_run and not isinstance(storage, DryRunStorageProvider):
        storage = DryRunStorageProvider(storage)

    browser: Optional[BrowserPool] = None
    owns_fetcher = fetcher is None
    if fetcher is None:
        if config.browser.enabled:
            browser = BrowserPool(config.browser, user_agent=config.http.user_agent)
        fetcher = Fetcher(config.http, config.retry, browser=browser)

    try:
        manifest = load_manifest(config, storage)
        orchestrator = IngestionOrchestrator(storage, fetcher, manifest, config.ingest)

        scraped = copy.deepcopy(list(entities))
        coverage = host_entity_assets(
            orchestrator,
            entities,
            namespace,
            id_field=config.reconcile.id_field,
            asset_fields=config.ingest.asset_fields,
        )
        save_manifest(manifest, config, storage)

        result = PipelineResult(
            storage_name=storage.name,
            coverage=coverage,
            stats=orchestrator.stats.as_dict(),
            dry_run=dry_run,
            manifest_entries=len(manifest),
        )
        if isinstance(storage, DryRunStorageProvider):
            result.intended_uploads = list(storage.intended)

        result.warnings = check_run_guards(
            scraped,
            coverage,
            config.guards,
            rows=rows,
            asset_fields=config.ingest.asset_fields,
            id_field=config.reconcile.id_field,
        )

        reconciler = SnapshotReconciler(
            out_dir, config.reconcile, storage=storage, remote_prefix=remote_prefix
        )
        result.reconcile = reconciler.reconcile(entities)
        return result
    finally:
        if owns_fetcher:
            fetcher.close()
        if browser is not None:
            browser.close()
        if owns_storage:
            storage.close()
