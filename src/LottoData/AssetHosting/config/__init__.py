"""
AssetHosting Configuration Package

Public API for loading, validating, and introspecting AssetHosting configuration.

Example:
    from LottoData.AssetHosting.config import load_config

    config = load_config(
        path="hosting.yaml",
        cli_overrides={"ingest": {"concurrency": 4, "dry_run": True}},
    )
    config_id = config.config_hash()
"""

from .loader import (
    export_config_schema,
    load_config,
    validate_config_file,
)
from .models import (
    BrowserConfig,
    GuardConfig,
    HostingConfig,
    HttpClientConfig,
    IngestConfig,
    ManifestConfig,
    ReconcileConfig,
    RetryPolicy,
)

__all__ = [
    # Models
    "HostingConfig",
    "HttpClientConfig",
    "RetryPolicy",
    "BrowserConfig",
    "IngestConfig",
    "ManifestConfig",
    "ReconcileConfig",
    "GuardConfig",
    # Loading/validation
    "load_config",
    "validate_config_file",
    "export_config_schema",
]
