# === NAVMAP v1 ===
# {
#   "module": "LottoData.AssetHosting.errors",
#   "purpose": "Error taxonomy and operator-facing reason helpers for asset hosting.",
#   "sections": [
#     {
#       "id": "hostingerror",
#       "name": "HostingError",
#       "anchor": "class-hostingerror",
#       "kind": "class"
#     },
#     {
#       "id": "fetcherror",
#       "name": "FetchError",
#       "anchor": "class-fetcherror",
#       "kind": "class"
#     },
#     {
#       "id": "unsupportedformat",
#       "name": "UnsupportedFormat",
#       "anchor": "class-unsupportedformat",
#       "kind": "class"
#     },
#     {
#       "id": "storageerror",
#       "name": "StorageError",
#       "anchor": "class-storageerror",
#       "kind": "class"
#     },
#     {
#       "id": "ingestionerror",
#       "name": "IngestionError",
#       "anchor": "class-ingestionerror",
#       "kind": "class"
#     },
#     {
#       "id": "reconciliationguardtripped",
#       "name": "ReconciliationGuardTripped",
#       "anchor": "class-reconciliationguardtripped",
#       "kind": "class"
#     },
#     {
#       "id": "describe-error",
#       "name": "describe_error",
#       "anchor": "function-describe-error",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Error taxonomy for asset ingestion, hosting, and snapshot reconciliation.

Responsibilities
----------------
- Define the exception types raised by each pipeline stage (``FetchError``,
  ``UnsupportedFormat``, ``StorageError``) and the per-asset wrapper
  ``IngestionError`` that the orchestrator raises once every fallback path is
  exhausted.
- Model protective refusals (``ReconciliationGuardTripped``) and fatal run
  guards (``RunGuardError``) separately so callers can decide which ones end
  the process.
- Translate exceptions into the short reasons used in ``[rehost]`` log lines
  via :func:`describe_error`.

Design Notes
------------
- Every exception keeps the metadata needed for log lines as attributes; the
  message itself stays human readable.
- Wrapped causes are chained with ``raise ... from`` so tracebacks retain the
  original network or storage failure.
"""

from __future__ import annotations

import logging
from typing import Any

__all__ = (
    "HostingError",
    "FetchError",
    "UnsupportedFormat",
    "StorageError",
    "ManifestError",
    "IngestionError",
    "RejectedSourceError",
    "ReconciliationGuardTripped",
    "RunGuardError",
    "describe_error",
)

LOGGER = logging.getLogger(__name__)


class HostingError(Exception):
    """Base class for all asset hosting failures."""


class FetchError(HostingError):
    """Raised when source bytes cannot be retrieved after retries and fallbacks."""

    def __init__(
        self,
        message: str,
        *,
        url: str,
        status: int | None = None,
        attempts: int = 0,
        via: str = "http",
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status = status
        self.attempts = attempts
        self.via = via


class UnsupportedFormat(HostingError):
    """Raised when bytes are neither PNG nor JPEG."""

    def __init__(
        self,
        message: str,
        *,
        declared_type: str | None = None,
        detected: str | None = None,
    ) -> None:
        super().__init__(message)
        self.declared_type = declared_type
        self.detected = detected


class StorageError(HostingError):
    """Raised when a storage backend rejects a write or cannot be constructed."""

    def __init__(
        self,
        message: str,
        *,
        backend: str,
        key: str | None = None,
        operation: str = "put",
    ) -> None:
        super().__init__(message)
        self.backend = backend
        self.key = key
        self.operation = operation


class ManifestError(HostingError):
    """Raised when the manifest cannot be persisted."""


class IngestionError(HostingError):
    """Raised for a single asset once every ingestion path failed."""

    def __init__(
        self,
        message: str,
        *,
        source_url: str,
        stage: str,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.source_url = source_url
        self.stage = stage
        self.cause = cause


class RejectedSourceError(IngestionError):
    """Raised when a source URL is not an absolute upstream URL."""

    def __init__(self, message: str, *, source_url: str) -> None:
        super().__init__(message, source_url=source_url, stage="validate")


class ReconciliationGuardTripped(HostingError):
    """Raised internally when a merge would shrink the historical snapshot file."""

    def __init__(
        self,
        message: str,
        *,
        path: str,
        previous: int,
        proposed: int,
        measure: str,
    ) -> None:
        super().__init__(message)
        self.path = path
        self.previous = previous
        self.proposed = proposed
        self.measure = measure


class RunGuardError(HostingError):
    """Raised when an aggregate guard indicates systemic upstream breakage."""

    def __init__(self, message: str, *, guard: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.guard = guard
        self.details = details or {}


def describe_error(exc: BaseException) -> str:
    """Return a short operator-facing reason for ``exc``.

    Examples:
        >>> describe_error(FetchError("boom", url="https://x", status=403, attempts=3))
        'HTTP 403 after 3 attempts'
        >>> describe_error(UnsupportedFormat("nope", declared_type="image/webp", detected="webp"))
        'unsupported format image/webp (bytes: webp)'
    """

    if isinstance(exc, IngestionError) and exc.cause is not None:
        return f"{exc.stage}: {describe_error(exc.cause)}"
    if isinstance(exc, FetchError):
        if exc.status is not None:
            reason = f"HTTP {exc.status}"
        else:
            reason = str(exc) or "network error"
        if exc.attempts:
            reason = f"{reason} after {exc.attempts} attempts"
        if exc.via != "http":
            reason = f"{reason} (via {exc.via})"
        return reason
    if isinstance(exc, UnsupportedFormat):
        declared = exc.declared_type or "(none)"
        detected = exc.detected or "unknown"
        return f"unsupported format {declared} (bytes: {detected})"
    if isinstance(exc, StorageError):
        return f"{exc.backend} {exc.operation} failed: {exc}"
    return str(exc) or exc.__class__.__name__
