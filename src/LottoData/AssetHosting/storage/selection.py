# === NAVMAP v1 ===
# {
#   "module": "LottoData.AssetHosting.storage.selection",
#   "purpose": "Resolve the storage backend from deployment variables and build the provider.",
#   "sections": [
#     {
#       "id": "derive-bucket-from-public-base",
#       "name": "derive_bucket_from_public_base",
#       "anchor": "function-derive-bucket-from-public-base",
#       "kind": "function"
#     },
#     {
#       "id": "storageproviderconfig",
#       "name": "StorageProviderConfig",
#       "anchor": "class-storageproviderconfig",
#       "kind": "class"
#     },
#     {
#       "id": "resolve-storage-config",
#       "name": "resolve_storage_config",
#       "anchor": "function-resolve-storage-config",
#       "kind": "function"
#     },
#     {
#       "id": "build-storage-provider",
#       "name": "build_storage_provider",
#       "anchor": "function-build-storage-provider",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Storage backend selection.

Backend choice is a pure function of the deployment environment, evaluated
once at process start. The resulting provider instance is passed explicitly to
the orchestrator and publisher; nothing reads ambient globals afterwards.

Priority chain::

    gcs  (bucket + public base resolvable)
     └─ s3   (account, keys, bucket and public base all present)
         └─ fs   (always available)

:func:`build_storage_provider` starts at the resolved backend and falls
through the chain when construction fails (missing client library, missing
credentials), so a misconfigured cloud deployment degrades to local files
instead of crashing.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Callable, ClassVar, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..errors import StorageError
from .base import StorageProvider, normalize_base_url
from .dry_run import DryRunStorageProvider
from .fs_store import FilesystemStorageProvider
from .gcs_store import GCSStorageProvider
from .s3_store import S3StorageProvider

__all__ = [
    "GCSSettings",
    "S3Settings",
    "FilesystemSettings",
    "StorageProviderConfig",
    "derive_bucket_from_public_base",
    "resolve_storage_config",
    "build_storage_provider",
]

logger = logging.getLogger(__name__)

BackendName = Literal["gcs", "s3", "fs"]

_GCS_PATH_STYLE = re.compile(r"^https?://storage\.googleapis\.com/([^/]+)", re.IGNORECASE)
_GCS_HOST_STYLE = re.compile(r"^https?://([^/]+?)\.storage\.googleapis\.com", re.IGNORECASE)


class GCSSettings(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    bucket: str
    public_base: str


class S3Settings(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    bucket: str
    public_base: str
    endpoint_url: str
    access_key_id: str = Field(repr=False)
    secret_access_key: str = Field(repr=False)
    region: str = "auto"


class FilesystemSettings(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    base_dir: str = "public/cdn"
    public_base: str = "http://localhost:3000/cdn"


class StorageProviderConfig(BaseModel):
    """Resolved storage settings. ``backend`` is the preferred provider."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    backend: BackendName = "fs"
    gcs: Optional[GCSSettings] = None
    s3: Optional[S3Settings] = None
    fs: FilesystemSettings = Field(default_factory=FilesystemSettings)

    def chain(self) -> List[BackendName]:
        """Backends to try, in order, starting at the preferred one."""
        order: List[BackendName] = ["gcs", "s3", "fs"]
        available = [
            name
            for name in order
            if name == "fs" or getattr(self, name) is not None
        ]
        if self.backend not in available:
            return available
        return available[available.index(self.backend):]

    def describe(self) -> Dict[str, str]:
        """Non-secret summary for CLI output."""
        summary: Dict[str, str] = {"backend": self.backend}
        if self.gcs is not None:
            summary["gcs"] = f"{self.gcs.bucket} → {self.gcs.public_base}"
        if self.s3 is not None:
            summary["s3"] = f"{self.s3.bucket} @ {self.s3.endpoint_url} → {self.s3.public_base}"
        summary["fs"] = f"{self.fs.base_dir} → {self.fs.public_base}"
        return summary


def _first(env: Mapping[str, str], *names: str) -> str:
    for name in names:
        value = (env.get(name) or "").strip()
        if value:
            return value
    return ""


def derive_bucket_from_public_base(public_base: str) -> Optional[str]:
    """Extract the bucket name from a Google Cloud Storage public URL.

    Examples:
        >>> derive_bucket_from_public_base("https://storage.googleapis.com/lotto-data/")
        'lotto-data'
        >>> derive_bucket_from_public_base("https://lotto-data.storage.googleapis.com")
        'lotto-data'
        >>> derive_bucket_from_public_base("https://cdn.example.com") is None
        True
    """
    if not public_base:
        return None
    for pattern in (_GCS_PATH_STYLE, _GCS_HOST_STYLE):
        match = pattern.match(public_base.strip())
        if match:
            return match.group(1)
    return None


def resolve_storage_config(env: Optional[Mapping[str, str]] = None) -> StorageProviderConfig:
    """Resolve storage settings from deployment variables.

    Pure: reads only ``env`` (defaults to ``os.environ``) and performs no I/O.
    """
    env = os.environ if env is None else env

    gcs: Optional[GCSSettings] = None
    public_base = normalize_base_url(
        _first(env, "PUBLIC_BASE_URL", "NEXT_PUBLIC_DATA_BASE_URL", "NEXT_PUBLIC_DATA_BASE")
    )
    bucket = _first(env, "GCS_BUCKET", "DATA_BUCKET") or derive_bucket_from_public_base(public_base)
    if bucket:
        gcs = GCSSettings(
            bucket=bucket,
            public_base=public_base or f"https://storage.googleapis.com/{bucket}",
        )

    s3: Optional[S3Settings] = None
    account = _first(env, "CLOUDFLARE_ACCOUNT_ID")
    access_key = _first(env, "R2_ACCESS_KEY_ID")
    secret_key = _first(env, "R2_SECRET_ACCESS_KEY")
    r2_bucket = _first(env, "R2_BUCKET")
    r2_public = normalize_base_url(_first(env, "R2_PUBLIC_BASE_URL"))
    endpoint = _first(env, "R2_ENDPOINT_URL") or (
        f"https://{account}.r2.cloudflarestorage.com" if account else ""
    )
    if endpoint and access_key and secret_key and r2_bucket and r2_public:
        s3 = S3Settings(
            bucket=r2_bucket,
            public_base=r2_public,
            endpoint_url=endpoint,
            access_key_id=access_key,
            secret_access_key=secret_key,
        )

    local_base = normalize_base_url(_first(env, "LOCAL_PUBLIC_BASE_URL") or "http://localhost:3000")
    fs = FilesystemSettings(public_base=f"{local_base}/cdn")

    backend: BackendName = "gcs" if gcs else "s3" if s3 else "fs"
    return StorageProviderConfig(backend=backend, gcs=gcs, s3=s3, fs=fs)


def _build_gcs(cfg: StorageProviderConfig) -> StorageProvider:
    assert cfg.gcs is not None
    return GCSStorageProvider(cfg.gcs.bucket, cfg.gcs.public_base)


def _build_s3(cfg: StorageProviderConfig) -> StorageProvider:
    assert cfg.s3 is not None
    return S3StorageProvider(
        cfg.s3.bucket,
        cfg.s3.public_base,
        endpoint_url=cfg.s3.endpoint_url,
        access_key_id=cfg.s3.access_key_id,
        secret_access_key=cfg.s3.secret_access_key,
        region=cfg.s3.region,
    )


def _build_fs(cfg: StorageProviderConfig) -> StorageProvider:
    return FilesystemStorageProvider(cfg.fs.base_dir, cfg.fs.public_base)


_BUILDERS: Dict[str, Callable[[StorageProviderConfig], StorageProvider]] = {
    "gcs": _build_gcs,
    "s3": _build_s3,
    "fs": _build_fs,
}


def build_storage_provider(
    cfg: StorageProviderConfig,
    *,
    dry_run: bool = False,
    builders: Optional[Mapping[str, Callable[[StorageProviderConfig], StorageProvider]]] = None,
) -> StorageProvider:
    """Instantiate the first backend in the chain that can be constructed.

    Args:
        cfg: Resolved storage settings
        dry_run: Wrap the provider so writes are only echoed
        builders: Backend factories keyed by name (tests)

    Returns:
        Ready-to-use provider
    """
    factories = dict(_BUILDERS)
    if builders:
        factories.update(builders)

    provider: Optional[StorageProvider] = None
    for name in cfg.chain():
        try:
            provider = factories[name](cfg)
            break
        except StorageError as exc:
            logger.warning(f"[storage] {name} provider unavailable ({exc}); falling back")

    if provider is None:
        raise StorageError("no storage provider could be constructed", backend="fs", operation="init")

    logger.info(f"[storage] using {provider.name.upper()} provider")
    if dry_run:
        return DryRunStorageProvider(provider)
    return provider
