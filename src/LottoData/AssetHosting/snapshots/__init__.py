"""Snapshot diffing, lifecycle tagging and history merging."""

from .models import CatalogEntity, Delta, DeltaCounts, HistoryFile, PublishedIndex
from .reconciler import (
    ReconcileResult,
    SnapshotReconciler,
    carry_forward,
    compute_delta,
    entity_id,
    id_sort_key,
)

__all__ = [
    "CatalogEntity",
    "Delta",
    "DeltaCounts",
    "HistoryFile",
    "PublishedIndex",
    "ReconcileResult",
    "SnapshotReconciler",
    "carry_forward",
    "compute_delta",
    "entity_id",
    "id_sort_key",
]
