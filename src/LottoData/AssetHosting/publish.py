"""Publish small JSON documents to hosted storage and the local tree."""

from __future__ import annotations

import logging
from typing import Any

from .io_utils import atomic_write_json, dump_json_bytes
from .storage.base import HostedAsset, StorageProvider

__all__ = ["JSON_CACHE_CONTROL", "put_json_object", "write_local_json"]

logger = logging.getLogger(__name__)

# Index and manifest objects change every run and must never be served stale.
JSON_CACHE_CONTROL = "no-store"


def put_json_object(
    storage: StorageProvider,
    key: str,
    data: Any,
    cache_control: str = JSON_CACHE_CONTROL,
) -> HostedAsset:
    """Serialise ``data`` and upload it under ``key``.

    Raises:
        StorageError: If the backend rejects the write.
    """
    payload = dump_json_bytes(data)
    hosted = storage.put(key, payload, "application/json", cache_control)
    logger.info(f"[json] put {key} ({len(payload)} bytes) → {hosted.url}")
    return hosted


def write_local_json(path: str, data: Any) -> int:
    """Atomically write ``data`` as JSON to ``path``; returns bytes written."""
    written = atomic_write_json(path, data)
    logger.info(f"[json] wrote {path} ({written} bytes)")
    return written
