"""
Pydantic v2 Configuration Models for AssetHosting

Provides strict, typed configuration for the ingestion pipeline:
- HTTP client settings (timeouts, browser-like headers, per-host referers)
- Retry and backoff policy for source downloads
- Headless browser fallback pool
- Ingestion knobs (concurrency, dry run, rehost-all, only-missing)
- Snapshot reconciliation and run guards
- Manifest locations (local file and remote mirror key)
- Top-level HostingConfig as single source of truth

All models use extra="forbid" for strict validation. Environment variables
and CLI overrides follow: file < env < CLI precedence.

Storage backend selection is deliberately not part of this model; it is
resolved from deployment variables by
:func:`LottoData.AssetHosting.storage.selection.resolve_storage_config`.
"""

from __future__ import annotations

from typing import ClassVar, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/125 Safari/537.36"
)

# ============================================================================
# Shared Policy Models
# ============================================================================


class RetryPolicy(BaseModel):
    """Configuration for source download retries."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    max_attempts: int = Field(default=3, description="Total HTTP attempts per source URL")
    retry_statuses: List[int] = Field(
        default=[408, 425, 429, 500, 502, 503, 504],
        description="HTTP status codes that trigger retry",
    )
    backoff_multiplier_s: float = Field(
        default=0.25, description="Base for exponential backoff with jitter"
    )
    backoff_max_s: float = Field(default=4.0, description="Maximum single backoff wait")

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v

    @field_validator("backoff_multiplier_s", "backoff_max_s")
    @classmethod
    def validate_delays(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Delay values must be >= 0")
        return v


class HttpClientConfig(BaseModel):
    """Configuration for the direct HTTP tier."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    timeout_s: float = Field(default=10.0, description="Per-request timeout in seconds")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="Browser-like User-Agent")
    accept: str = Field(
        default="image/png,image/jpeg;q=0.9,*/*;q=0.7",
        description="Accept header (prefers PNG/JPEG so CDNs do not negotiate WEBP)",
    )
    accept_language: str = Field(default="en-US,en;q=0.9", description="Accept-Language")
    default_referer: str = Field(
        default="https://www.galottery.com/", description="Referer for unknown hosts"
    )
    referers: Dict[str, str] = Field(
        default_factory=lambda: {
            "nylottery.ny.gov": "https://nylottery.ny.gov/",
            "galottery.com": "https://www.galottery.com/",
            "flalottery.com": "https://www.flalottery.com/",
            "calottery.com": "https://www.calottery.com/",
            "texaslottery.com": "https://www.texaslottery.com/",
        },
        description="Referer per upstream host suffix",
    )
    verify_tls: bool = Field(default=True, description="Verify TLS certificates")

    @field_validator("timeout_s")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout_s must be > 0")
        return v


class BrowserConfig(BaseModel):
    """Configuration for the headless browser fallback tier."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    enabled: bool = Field(default=True, description="Escalate to a headless browser on failure")
    pool_size: int = Field(default=2, description="Browser threads (one browser each)")
    timeout_s: float = Field(default=30.0, description="Navigation timeout in seconds")
    headless: bool = Field(default=True, description="Run Chromium headless")
    launch_args: List[str] = Field(
        default_factory=lambda: ["--no-sandbox", "--disable-dev-shm-usage"],
        description="Chromium launch arguments",
    )

    @field_validator("pool_size")
    @classmethod
    def validate_pool_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("pool_size must be >= 1")
        return v

    @field_validator("timeout_s")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout_s must be > 0")
        return v


class IngestConfig(BaseModel):
    """Ingestion behaviour for one run."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    concurrency: int = Field(default=6, description="Concurrent ingestion jobs")
    per_host_limit: Optional[int] = Field(
        default=None, description="Concurrent fetches per upstream host (None = concurrency)"
    )
    dry_run: bool = Field(default=False, description="Skip writes, echo intended URLs")
    rehost_all: bool = Field(default=False, description="Bypass manifest reuse")
    only_missing: bool = Field(
        default=True, description="Only upload assets absent from hosted storage"
    )
    allow_localhost: bool = Field(default=False, description="Permit localhost source URLs")
    allowed_hosts: List[str] = Field(
        default_factory=list,
        description="Upstream host suffixes accepted as sources (empty = any public host)",
    )
    cache_control: str = Field(
        default="public, max-age=31536000, immutable",
        description="Cache-Control for content-addressed objects",
    )
    asset_fields: Dict[str, str] = Field(
        default_factory=lambda: {"ticket": "ticketImageUrl", "odds": "oddsImageUrl"},
        description="Asset kind -> entity field holding its URL",
    )

    @field_validator("concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError("concurrency must be >= 1")
        return v

    @field_validator("per_host_limit")
    @classmethod
    def validate_per_host_limit(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("per_host_limit must be >= 1 or None")
        return v

    @field_validator("asset_fields")
    @classmethod
    def validate_asset_fields(cls, v: Dict[str, str]) -> Dict[str, str]:
        if not v:
            raise ValueError("asset_fields must not be empty")
        return v


class ManifestConfig(BaseModel):
    """Manifest file locations."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    path: str = Field(
        default="public/data/ga/scratchers/_image_manifest.json",
        description="Local manifest path",
    )
    remote_key: Optional[str] = Field(
        default="ga/scratchers/_image_manifest.json",
        description="Remote mirror object key (None disables the mirror)",
    )


class ReconcileConfig(BaseModel):
    """Snapshot reconciliation settings."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    id_field: str = Field(default="gameNumber", description="Entity identity field")
    index_name: str = Field(default="index.json", description="Published index file name")
    latest_name: Optional[str] = Field(
        default="index.latest.json", description="Mirror of the index (None disables)"
    )
    history_name: str = Field(default="index.merged.json", description="Historical merge file")
    guard_measure: Literal["count", "bytes"] = Field(
        default="count", description="Anti-truncation comparison measure"
    )
    carry_forward_exclude: List[str] = Field(
        default_factory=lambda: ["lifecycle", "updatedAt"],
        description="Fields never carried forward from the previous snapshot",
    )


class GuardConfig(BaseModel):
    """Aggregate run guards."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    min_entities: int = Field(default=1, ge=0, description="Fail when fewer entities were built")
    min_coverage: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Fail when hosted/total falls below this"
    )
    required_fields: List[str] = Field(
        default_factory=list,
        description="Fields whose absence on most entities triggers a warning",
    )
    missing_fields_ratio: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Warn above this share of incomplete entities"
    )
    fail_on_guard: bool = Field(
        default=False, description="Exit non-zero when the anti-truncation guard trips"
    )


# ============================================================================
# Top-Level Configuration
# ============================================================================


class HostingConfig(BaseModel):
    """
    Single source of truth for AssetHosting configuration.

    Loaded from file (YAML/JSON), overlaid with environment variables,
    and finally overridden by CLI arguments. Precedence: file < env < CLI.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", validate_assignment=True)

    run_id: Optional[str] = Field(default=None, description="Run identifier for traceability")
    http: HttpClientConfig = Field(default_factory=HttpClientConfig, description="HTTP tier")
    retry: RetryPolicy = Field(default_factory=RetryPolicy, description="Retry policy")
    browser: BrowserConfig = Field(default_factory=BrowserConfig, description="Browser tier")
    ingest: IngestConfig = Field(default_factory=IngestConfig, description="Ingestion knobs")
    manifest: ManifestConfig = Field(default_factory=ManifestConfig, description="Manifest")
    reconcile: ReconcileConfig = Field(
        default_factory=ReconcileConfig, description="Snapshot reconciliation"
    )
    guards: GuardConfig = Field(default_factory=GuardConfig, description="Run guards")

    def config_hash(self) -> str:
        """
        Compute deterministic SHA256 hash of config for reproducibility.

        Returns:
            Hex-encoded SHA256 hash of normalized config JSON.
        """
        import hashlib
        import json

        normalized = json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(normalized.encode()).hexdigest()
