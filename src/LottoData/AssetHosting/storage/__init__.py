"""Pluggable object storage for hosted assets."""

from .base import (
    DEFAULT_CACHE_CONTROL,
    MISSING,
    HeadResult,
    HostedAsset,
    StorageProvider,
)
from .dry_run import DryRunStorageProvider
from .fs_store import FilesystemStorageProvider
from .gcs_store import GCSStorageProvider
from .s3_store import S3StorageProvider
from .selection import (
    StorageProviderConfig,
    build_storage_provider,
    derive_bucket_from_public_base,
    resolve_storage_config,
)

__all__ = [
    "DEFAULT_CACHE_CONTROL",
    "MISSING",
    "HeadResult",
    "HostedAsset",
    "StorageProvider",
    "DryRunStorageProvider",
    "FilesystemStorageProvider",
    "GCSStorageProvider",
    "S3StorageProvider",
    "StorageProviderConfig",
    "build_storage_provider",
    "derive_bucket_from_public_base",
    "resolve_storage_config",
]
