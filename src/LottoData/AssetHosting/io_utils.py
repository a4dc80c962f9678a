"""Atomic file writes for hosted objects, manifests, and snapshots.

**Atomicity guarantee**
-----------------------
- Writes go to a temporary file in the destination directory, so the final
  ``os.replace`` never crosses a filesystem boundary.
- Data and file descriptor are fsync'd before the rename.
- On error the temporary file is removed; readers only ever observe the old
  file or the complete new one. An aborted run therefore leaves the previous
  manifest or snapshot intact.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from typing import Any

__all__ = ["atomic_write_bytes", "atomic_write_json", "dump_json_bytes"]

logger = logging.getLogger(__name__)


def atomic_write_bytes(dest_path: str, data: bytes) -> int:
    """Write ``data`` to ``dest_path`` atomically.

    Parent directories are created if they don't exist.

    Returns:
        Number of bytes written.

    Raises:
        OSError: If file I/O fails (permission denied, disk full, etc.).
    """
    dest_dir = os.path.dirname(dest_path) or "."
    os.makedirs(dest_dir, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=dest_dir, prefix=".part-", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, dest_path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise

    logger.debug(f"Atomic write complete: {dest_path} ({len(data)} bytes)")
    return len(data)


def dump_json_bytes(payload: Any) -> bytes:
    """Serialise ``payload`` the way every JSON artifact is written (2-space indent)."""
    return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")


def atomic_write_json(dest_path: str, payload: Any) -> int:
    """Serialise ``payload`` as indented UTF-8 JSON and write it atomically."""
    return atomic_write_bytes(dest_path, dump_json_bytes(payload))
