"""Configuration loading: file < env < CLI."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from LottoData.AssetHosting.config import (
    HostingConfig,
    export_config_schema,
    load_config,
    validate_config_file,
)


def _write_yaml(tmp_path: Path, data) -> str:
    path = tmp_path / "hosting.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


def test_defaults() -> None:
    config = load_config(env={})
    assert config.ingest.concurrency == 6
    assert config.ingest.only_missing is True
    assert config.retry.max_attempts == 3
    assert config.reconcile.guard_measure == "count"
    assert config.ingest.asset_fields == {"ticket": "ticketImageUrl", "odds": "oddsImageUrl"}


def test_precedence_file_env_cli(tmp_path: Path) -> None:
    path = _write_yaml(tmp_path, {"ingest": {"concurrency": 2, "dry_run": True}})

    from_file = load_config(path, env={})
    from_env = load_config(path, env={"LOTTO_INGEST__CONCURRENCY": "4"})
    from_cli = load_config(
        path,
        env={"LOTTO_INGEST__CONCURRENCY": "4"},
        cli_overrides={"ingest": {"concurrency": 8}},
    )

    assert from_file.ingest.concurrency == 2
    assert from_env.ingest.concurrency == 4
    assert from_env.ingest.dry_run is True
    assert from_cli.ingest.concurrency == 8


def test_env_values_are_json_coerced() -> None:
    config = load_config(
        env={
            "LOTTO_INGEST__ALLOWED_HOSTS": '["galottery.com"]',
            "LOTTO_RECONCILE__GUARD_MEASURE": "bytes",
            "LOTTO_GUARDS__FAIL_ON_GUARD": "true",
        }
    )
    assert config.ingest.allowed_hosts == ["galottery.com"]
    assert config.reconcile.guard_measure == "bytes"
    assert config.guards.fail_on_guard is True


def test_allow_localhost_switch() -> None:
    assert load_config(env={"ALLOW_LOCALHOST": "1"}).ingest.allow_localhost is True
    assert load_config(env={"ALLOW_LOCALHOST": "0"}).ingest.allow_localhost is False
    explicit = load_config(
        env={"ALLOW_LOCALHOST": "1", "LOTTO_INGEST__ALLOW_LOCALHOST": "false"}
    )
    assert explicit.ingest.allow_localhost is False


def test_unknown_keys_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValidationError):
        load_config(_write_yaml(tmp_path, {"ingest": {"concurency": 3}}), env={})


@pytest.mark.parametrize(
    "overrides",
    [
        {"ingest": {"concurrency": 0}},
        {"retry": {"max_attempts": 0}},
        {"guards": {"min_coverage": 1.5}},
        {"ingest": {"asset_fields": {}}},
    ],
)
def test_invalid_values_are_rejected(overrides) -> None:
    with pytest.raises(ValidationError):
        load_config(env={}, cli_overrides=overrides)


def test_missing_or_unsupported_file(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        load_config(str(tmp_path / "absent.yaml"), env={})
    toml = tmp_path / "hosting.toml"
    toml.write_text("x = 1")
    with pytest.raises(ValueError):
        load_config(str(toml), env={})


def test_validate_config_file_and_json(tmp_path: Path) -> None:
    path = tmp_path / "hosting.json"
    path.write_text('{"browser": {"enabled": false}}')
    assert validate_config_file(str(path)) is True
    assert load_config(str(path), env={}).browser.enabled is False


def test_config_hash_is_stable() -> None:
    assert HostingConfig().config_hash() == HostingConfig().config_hash()
    assert HostingConfig().config_hash() != load_config(
        env={}, cli_overrides={"run_id": "r1"}
    ).config_hash()


def test_schema_export() -> None:
    schema = export_config_schema()
    assert "ingest" in schema["properties"]
