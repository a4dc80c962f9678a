"""CLI commands via Typer's test runner."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from LottoData.AssetHosting.cli import app
from LottoData.AssetHosting.manifest import Manifest
from LottoData.AssetHosting.storage.base import HostedAsset

runner = CliRunner()

_STORAGE_VARS = (
    "GCS_BUCKET",
    "DATA_BUCKET",
    "PUBLIC_BASE_URL",
    "NEXT_PUBLIC_DATA_BASE_URL",
    "NEXT_PUBLIC_DATA_BASE",
    "CLOUDFLARE_ACCOUNT_ID",
    "R2_ACCESS_KEY_ID",
    "R2_SECRET_ACCESS_KEY",
    "R2_BUCKET",
    "R2_PUBLIC_BASE_URL",
    "R2_ENDPOINT_URL",
    "LOCAL_PUBLIC_BASE_URL",
    "LOTTODATA_CONFIG",
    "ALLOW_LOCALHOST",
)


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch) -> Path:
    for name in _STORAGE_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    config = {"browser": {"enabled": False}, "guards": {"min_coverage": 0.0}}
    (tmp_path / "hosting.yaml").write_text(yaml.safe_dump(config))
    return tmp_path


def test_validate_config(workdir: Path) -> None:
    result = runner.invoke(app, ["validate-config", str(workdir / "hosting.yaml")])
    assert result.exit_code == 0
    assert "Config valid" in result.stdout

    bad = workdir / "bad.yaml"
    bad.write_text(yaml.safe_dump({"ingest": {"concurrency": 0}}))
    result = runner.invoke(app, ["validate-config", str(bad)])
    assert result.exit_code == 1


def test_print_config_raw(workdir: Path) -> None:
    result = runner.invoke(app, ["print-config", "--config", "hosting.yaml", "--raw"])
    assert result.exit_code == 0
    assert json.loads(result.stdout)["browser"]["enabled"] is False


def test_storage_resolution_defaults_to_filesystem(workdir: Path) -> None:
    result = runner.invoke(app, ["storage"])
    assert result.exit_code == 0
    assert "fs" in result.stdout


def test_manifest_stats(workdir: Path) -> None:
    manifest = Manifest()
    manifest.record(
        "https://www.galottery.com/1.png",
        HostedAsset(key="ga/1/ticket.png", url="http://localhost:3000/cdn/ga/1/ticket.png", content_type="image/png", bytes=10),
        "a" * 64,
    )
    manifest.save("m.json")

    result = runner.invoke(app, ["manifest-stats", "m.json"])
    assert result.exit_code == 0
    assert "image/png" in result.stdout

    missing = runner.invoke(app, ["manifest-stats", "absent.json"])
    assert missing.exit_code == 1


def test_run_publishes_index_without_assets(workdir: Path) -> None:
    (workdir / "games.json").write_text(
        json.dumps({"rows": 2, "entities": [{"gameNumber": 1, "name": "A"}, {"gameNumber": 2, "name": "B"}]})
    )

    result = runner.invoke(
        app,
        ["run", "-e", "games.json", "-n", "ga/images", "-o", "out", "-c", "hosting.yaml"],
    )

    assert result.exit_code == 0, result.stdout
    index = json.loads((workdir / "out" / "index.json").read_text())
    assert index["count"] == 2
    assert "Execution Summary" in result.stdout


def test_run_with_no_entities_fails(workdir: Path) -> None:
    (workdir / "games.json").write_text("[]")

    result = runner.invoke(
        app,
        ["run", "-e", "games.json", "-n", "ga/images", "-o", "out", "-c", "hosting.yaml"],
    )

    assert result.exit_code == 1
    assert "min_entities" in result.stdout
    assert not (workdir / "out" / "index.json").exists()


def test_run_rejects_malformed_entities(workdir: Path) -> None:
    (workdir / "games.json").write_text(json.dumps({"entities": "nope"}))

    result = runner.invoke(
        app,
        ["run", "-e", "games.json", "-n", "ga/images", "-o", "out", "-c", "hosting.yaml"],
    )

    assert result.exit_code == 1
