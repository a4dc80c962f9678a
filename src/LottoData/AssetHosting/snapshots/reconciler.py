# === NAVMAP v1 ===
# {
#   "module": "LottoData.AssetHosting.snapshots.reconciler",
#   "purpose": "Diff snapshots, tag lifecycle, carry fields forward and merge history without shrinking it.",
#   "sections": [
#     {
#       "id": "compute-delta",
#       "name": "compute_delta",
#       "anchor": "function-compute-delta",
#       "kind": "function"
#     },
#     {
#       "id": "carry-forward",
#       "name": "carry_forward",
#       "anchor": "function-carry-forward",
#       "kind": "function"
#     },
#     {
#       "id": "reconcileresult",
#       "name": "ReconcileResult",
#       "anchor": "class-reconcileresult",
#       "kind": "class"
#     },
#     {
#       "id": "snapshotreconciler",
#       "name": "SnapshotReconciler",
#       "anchor": "class-snapshotreconciler",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Snapshot reconciliation.

Runs once per run, after every asset is hosted, on a single thread.

Lifecycle over entity identity::

    unseen ──► new ──► continuing ──► ended
                 (now − prev)  (now ∩ prev)  (prev − now)

Outputs
-------
- ``index.json`` (and ``index.latest.json``): exactly the current IDs, each
  tagged ``lifecycle: new|continuing``, plus ``deltaIndex``.
- ``index.merged.json``: union of every entity ever seen, current values win.

Protection
----------
- *Carry-forward*: a continuing entity that lost a field this run (``None`` or
  absent) keeps the previous value.
- *Anti-truncation*: the history file is only replaced when the merged result
  is not smaller than what is on disk (record count, or serialised bytes), and
  never by an empty snapshot. A refusal is logged and reported, the previous
  file stays untouched, and the run continues.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from ..config.models import ReconcileConfig
from ..errors import ReconciliationGuardTripped, StorageError
from ..io_utils import atomic_write_bytes, dump_json_bytes
from ..publish import put_json_object
from ..storage.base import StorageProvider
from .models import CatalogEntity, Delta, DeltaCounts, HistoryFile, PublishedIndex

__all__ = [
    "ReconcileResult",
    "SnapshotReconciler",
    "carry_forward",
    "compute_delta",
    "entity_id",
    "id_sort_key",
]

LOGGER = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def entity_id(record: Mapping[str, Any], id_field: str) -> Optional[str]:
    """Return the normalised identity of ``record`` or ``None``."""
    value = record.get(id_field)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def id_sort_key(value: str) -> Tuple[int, Any]:
    """Numeric IDs first in numeric order, then the rest lexically."""
    return (0, int(value)) if value.isdigit() else (1, value)


def compute_delta(previous_ids: Iterable[str], current_ids: Iterable[str]) -> Delta:
    """Classify identities as new, continuing or ended.

    Examples:
        >>> compute_delta({"1", "2", "3"}, {"2", "3", "4"}).new
        ['4']
    """
    prev = set(previous_ids)
    now = set(current_ids)
    new = sorted(now - prev, key=id_sort_key)
    continuing = sorted(now & prev, key=id_sort_key)
    ended = sorted(prev - now, key=id_sort_key)
    return Delta(
        new=new,
        continuing=continuing,
        ended=ended,
        counts=DeltaCounts(
            new=len(new), continuing=len(continuing), ended=len(ended), index=len(now)
        ),
    )


def carry_forward(
    current: Mapping[str, Any],
    previous: Optional[Mapping[str, Any]],
    exclude: Sequence[str] = (),
) -> Dict[str, Any]:
    """Fill fields missing (or ``None``) in ``current`` from ``previous``."""
    merged = dict(current)
    if not previous:
        return merged
    for name, value in previous.items():
        if name in exclude or value is None:
            continue
        if merged.get(name) is None:
            merged[name] = value
    return merged


@dataclass
class ReconcileResult:
    """What one reconciliation produced and what it wrote."""

    delta: Delta
    index: Dict[str, Any]
    index_written: bool = False
    history_written: bool = False
    guard: Optional[ReconciliationGuardTripped] = None
    written_paths: List[str] = field(default_factory=list)

    @property
    def guard_tripped(self) -> bool:
        return self.guard is not None


class SnapshotReconciler:
    """Reconcile a freshly built entity list against the published snapshot."""

    def __init__(
        self,
        out_dir: str,
        config: Optional[ReconcileConfig] = None,
        *,
        storage: Optional[StorageProvider] = None,
        remote_prefix: Optional[str] = None,
        clock: Callable[[], str] = utc_now_iso,
    ):
        """Initialize reconciler.

        Args:
            out_dir: Directory holding ``index.json`` and the history file
            config: Reconciliation settings
            storage: Provider used for the remote copy of the index
            remote_prefix: Key prefix of the remote index (None disables it)
            clock: ``updatedAt`` source
        """
        self.out_dir = Path(out_dir)
        self.config = config or ReconcileConfig()
        self.storage = storage
        self.remote_prefix = remote_prefix.strip("/") if remote_prefix else None
        self.clock = clock

    # ------------------------------------------------------------------ #
    # Paths
    # ------------------------------------------------------------------ #

    @property
    def index_path(self) -> Path:
        return self.out_dir / self.config.index_name

    @property
    def history_path(self) -> Path:
        return self.out_dir / self.config.history_name

    def remote_key(self, name: str) -> Optional[str]:
        if self.storage is None or self.remote_prefix is None:
            return None
        return f"{self.remote_prefix}/{name}" if self.remote_prefix else name

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #

    def load_previous(self) -> Optional[PublishedIndex]:
        """Return the last published index (local first, then remote)."""
        payload: Optional[bytes] = None
        origin = str(self.index_path)
        try:
            payload = self.index_path.read_bytes()
        except FileNotFoundError:
            payload = None
        except OSError as exc:
            LOGGER.warning(f"[reconcile] cannot read {origin}: {exc}")

        key = self.remote_key(self.config.index_name)
        if payload is None and key is not None:
            origin = f"remote:{key}"
            try:
                payload = self.storage.get(key)
            except StorageError as exc:
                LOGGER.warning(f"[reconcile] cannot read {origin}: {exc}")

        if payload is None:
            LOGGER.info("[reconcile] no previous index; every entity is new")
            return None
        return self._parse_index(payload, origin)

    def _parse_index(self, payload: bytes, origin: str) -> Optional[PublishedIndex]:
        try:
            data = json.loads(payload.decode("utf-8"))
            if isinstance(data, list):
                data = {"entities": data, "count": len(data)}
            return PublishedIndex.model_validate(data)
        except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
            LOGGER.warning(f"[reconcile] previous index {origin} is malformed ({exc}); ignoring")
            return None

    def _load_history(self) -> Tuple[Optional[HistoryFile], int]:
        """Return the on-disk history (``None`` if absent) and its size in bytes.

        Raises:
            ReconciliationGuardTripped: The file exists but cannot be parsed.
        """
        try:
            payload = self.history_path.read_bytes()
        except FileNotFoundError:
            return None, 0
        try:
            data = json.loads(payload.decode("utf-8"))
            if isinstance(data, list):
                data = {"entities": data, "count": len(data)}
            return HistoryFile.model_validate(data), len(payload)
        except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
            raise ReconciliationGuardTripped(
                f"existing history {self.history_path} is unreadable ({exc})",
                path=str(self.history_path),
                previous=len(payload),
                proposed=0,
                measure="unreadable",
            ) from exc

    # ------------------------------------------------------------------ #
    # Reconciliation
    # ------------------------------------------------------------------ #

    def _normalise(self, entities: Sequence[Mapping[str, Any]]) -> Dict[str, Dict[str, Any]]:
        """Key records by identity, dropping ones without an ID (first wins)."""
        records: Dict[str, Dict[str, Any]] = {}
        skipped = 0
        for raw in entities:
            ident = entity_id(raw, self.config.id_field)
            if ident is None:
                skipped += 1
                continue
            if ident in records:
                LOGGER.debug(f"[reconcile] duplicate {self.config.id_field}={ident}; keeping first")
                continue
            body = {k: v for k, v in raw.items() if k != "lifecycle"}
            try:
                records[ident] = CatalogEntity.model_validate(body).to_record()
            except ValidationError as exc:
                LOGGER.warning(
                    f"[reconcile] skipping validation of {ident}: {exc.error_count()} invalid field(s)"
                )
                records[ident] = body
        if skipped:
            LOGGER.warning(f"[reconcile] skipped {skipped} entities without {self.config.id_field}")
        return records

    def build_index(
        self,
        entities: Sequence[Mapping[str, Any]],
        previous: Optional[PublishedIndex],
    ) -> Tuple[Dict[str, Any], Delta]:
        """Build the index payload and delta without writing anything."""
        current = self._normalise(entities)
        prev_records: Dict[str, Mapping[str, Any]] = {}
        if previous is not None:
            for record in previous.entities:
                ident = entity_id(record, self.config.id_field)
                if ident is not None:
                    prev_records.setdefault(ident, record)

        delta = compute_delta(prev_records.keys(), current.keys())
        new_ids = set(delta.new)
        published: List[Dict[str, Any]] = []
        for ident in sorted(current, key=id_sort_key):
            record = carry_forward(
                current[ident], prev_records.get(ident), self.config.carry_forward_exclude
            )
            record["lifecycle"] = "new" if ident in new_ids else "continuing"
            published.append(record)

        index = PublishedIndex(
            updated_at=self.clock(),
            count=len(published),
            delta_index=delta,
            entities=published,
        )
        return index.to_json(), delta

    def merge_history(
        self,
        published: Sequence[Mapping[str, Any]],
        history: Optional[HistoryFile],
    ) -> Dict[str, Any]:
        """Union the published entities into the history, current values winning."""
        merged: Dict[str, Dict[str, Any]] = {}
        if history is not None:
            for record in history.entities:
                ident = entity_id(record, self.config.id_field)
                if ident is not None:
                    merged.setdefault(ident, {k: v for k, v in record.items() if k != "lifecycle"})
        for record in published:
            ident = entity_id(record, self.config.id_field)
            if ident is None:
                continue
            merged[ident] = carry_forward(record, merged.get(ident), self.config.carry_forward_exclude)
        for ident, record in merged.items():
            record.setdefault("lifecycle", "ended")

        entities = [merged[ident] for ident in sorted(merged, key=id_sort_key)]
        return HistoryFile(updated_at=self.clock(), count=len(entities), entities=entities).to_json()

    def _check_guard(
        self,
        proposed: Dict[str, Any],
        proposed_bytes: int,
        current_count: int,
        history: Optional[HistoryFile],
        history_bytes: int,
    ) -> None:
        """Raise when writing ``proposed`` would shrink the history."""
        if history is None:
            return
        path = str(self.history_path)
        if current_count == 0 and history.entities:
            raise ReconciliationGuardTripped(
                f"refusing to merge an empty snapshot into {path} ({len(history.entities)} entities)",
                path=path,
                previous=len(history.entities),
                proposed=0,
                measure="count",
            )
        if self.config.guard_measure == "bytes":
            previous, candidate = history_bytes, proposed_bytes
        else:
            previous, candidate = len(history.entities), int(proposed["count"])
        if candidate < previous:
            raise ReconciliationGuardTripped(
                f"merged {path} would shrink ({self.config.guard_measure} {previous} → {candidate})",
                path=path,
                previous=previous,
                proposed=candidate,
                measure=self.config.guard_measure,
            )

    def reconcile(
        self,
        entities: Sequence[Mapping[str, Any]],
        previous: Optional[PublishedIndex] = None,
        *,
        load_previous: bool = True,
    ) -> ReconcileResult:
        """Diff, publish the index and merge the history.

        Guard refusals are returned in :attr:`ReconcileResult.guard`, never raised.
        """
        if previous is None and load_previous:
            previous = self.load_previous()

        index, delta = self.build_index(entities, previous)
        result = ReconcileResult(delta=delta, index=index)
        LOGGER.info(
            f"[reconcile] new={delta.counts.new} continuing={delta.counts.continuing} "
            f"ended={delta.counts.ended} index={delta.counts.index}"
        )

        previous_count = len(previous.entities) if previous is not None else 0
        if index["count"] == 0 and previous_count > 0:
            result.guard = ReconciliationGuardTripped(
                f"refusing to replace {self.index_path} ({previous_count} entities) with an empty index",
                path=str(self.index_path),
                previous=previous_count,
                proposed=0,
                measure="count",
            )
            LOGGER.warning(f"[guard] {result.guard}; keeping previous files")
            return result

        self._write_index(index, result)

        try:
            history, history_bytes = self._load_history()
            merged = self.merge_history(index["entities"], history)
            payload = dump_json_bytes(merged)
            self._check_guard(merged, len(payload), index["count"], history, history_bytes)
        except ReconciliationGuardTripped as exc:
            result.guard = exc
            LOGGER.warning(f"[guard] {exc}; keeping previous file")
            return result

        atomic_write_bytes(str(self.history_path), payload)
        result.history_written = True
        result.written_paths.append(str(self.history_path))
        LOGGER.info(f"[reconcile] history {self.history_path} now holds {merged['count']} entities")
        return result

    def _write_index(self, index: Dict[str, Any], result: ReconcileResult) -> None:
        payload = dump_json_bytes(index)
        names = [self.config.index_name]
        if self.config.latest_name:
            names.append(self.config.latest_name)
        for name in names:
            path = self.out_dir / name
            atomic_write_bytes(str(path), payload)
            result.written_paths.append(str(path))
        result.index_written = True
        LOGGER.info(f"[reconcile] wrote {', '.join(names)} to {self.out_dir} ({index['count']} entities)")

        for name in names:
            key = self.remote_key(name)
            if key is None:
                continue
            try:
                put_json_object(self.storage, key, index)
            except StorageError as exc:
                LOGGER.warning(f"[reconcile] remote copy {key} failed: {exc}")
