"""Backend resolution from deployment variables and the fallback chain."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from LottoData.AssetHosting.errors import StorageError
from LottoData.AssetHosting.storage import (
    DryRunStorageProvider,
    FilesystemStorageProvider,
    build_storage_provider,
    derive_bucket_from_public_base,
    resolve_storage_config,
)
from LottoData.AssetHosting.storage.selection import FilesystemSettings, StorageProviderConfig
from tests.asset_hosting.fakes import PNG_BYTES, MemoryStorage

R2_ENV = {
    "CLOUDFLARE_ACCOUNT_ID": "acct",
    "R2_ACCESS_KEY_ID": "key",
    "R2_SECRET_ACCESS_KEY": "secret",
    "R2_BUCKET": "lotto",
    "R2_PUBLIC_BASE_URL": "https://assets.example.com/",
}


def test_empty_environment_selects_filesystem() -> None:
    cfg = resolve_storage_config({})
    assert cfg.backend == "fs"
    assert cfg.chain() == ["fs"]
    assert cfg.fs.public_base == "http://localhost:3000/cdn"


def test_gcs_bucket_derived_from_public_base() -> None:
    cfg = resolve_storage_config(
        {"NEXT_PUBLIC_DATA_BASE_URL": "https://storage.googleapis.com/lotto-data/"}
    )
    assert cfg.backend == "gcs"
    assert cfg.gcs.bucket == "lotto-data"
    assert cfg.gcs.public_base == "https://storage.googleapis.com/lotto-data"


def test_gcs_public_base_defaults_from_bucket() -> None:
    cfg = resolve_storage_config({"GCS_BUCKET": "b1"})
    assert cfg.gcs.public_base == "https://storage.googleapis.com/b1"


def test_r2_requires_every_variable() -> None:
    cfg = resolve_storage_config(R2_ENV)
    assert cfg.backend == "s3"
    assert cfg.s3.endpoint_url == "https://acct.r2.cloudflarestorage.com"
    assert cfg.s3.public_base == "https://assets.example.com"

    partial = {k: v for k, v in R2_ENV.items() if k != "R2_SECRET_ACCESS_KEY"}
    assert resolve_storage_config(partial).backend == "fs"


def test_gcs_outranks_r2() -> None:
    cfg = resolve_storage_config({**R2_ENV, "GCS_BUCKET": "b1"})
    assert cfg.backend == "gcs"
    assert cfg.chain() == ["gcs", "s3", "fs"]


def test_describe_hides_secrets() -> None:
    summary = resolve_storage_config(R2_ENV).describe()
    assert "secret" not in " ".join(summary.values())
    assert summary["backend"] == "s3"


def test_derive_bucket_from_public_base() -> None:
    assert derive_bucket_from_public_base("https://b2.storage.googleapis.com/x") == "b2"
    assert derive_bucket_from_public_base("https://cdn.example.com/x") is None
    assert derive_bucket_from_public_base("") is None


def test_build_falls_through_unavailable_backends(tmp_path: Path, caplog) -> None:
    cfg = StorageProviderConfig(
        backend="gcs",
        gcs={"bucket": "b", "public_base": "https://storage.googleapis.com/b"},
        fs=FilesystemSettings(base_dir=str(tmp_path)),
    )

    def broken(_cfg):
        raise StorageError("no credentials", backend="gcs", operation="init")

    with caplog.at_level(logging.INFO, logger="LottoData.AssetHosting.storage.selection"):
        provider = build_storage_provider(cfg, builders={"gcs": broken})

    assert isinstance(provider, FilesystemStorageProvider)
    assert "falling back" in caplog.text
    assert "[storage] using FS provider" in caplog.text


def test_build_raises_when_nothing_constructs() -> None:
    def broken(_cfg):
        raise StorageError("disk unavailable", backend="fs", operation="init")

    with pytest.raises(StorageError):
        build_storage_provider(StorageProviderConfig(), builders={"fs": broken})


def test_dry_run_wraps_provider_and_records_intent() -> None:
    inner = MemoryStorage()
    provider = build_storage_provider(
        StorageProviderConfig(), dry_run=True, builders={"fs": lambda _cfg: inner}
    )

    assert isinstance(provider, DryRunStorageProvider)
    assert provider.name == "memory+dry-run"
    hosted = provider.put("ns/1/ticket.png", PNG_BYTES, "image/png")
    assert hosted.url == "https://cdn.test/assets/ns/1/ticket.png"
    assert inner.puts == []
    assert [asset.key for asset in provider.intended] == ["ns/1/ticket.png"]
