"""End-to-end runs over in-memory storage and a mocked upstream."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from LottoData.AssetHosting.config import HostingConfig, load_config
from LottoData.AssetHosting.errors import RunGuardError
from LottoData.AssetHosting.manifest import Manifest
from LottoData.AssetHosting.pipeline import run_pipeline
from tests.asset_hosting.fakes import JPEG_BYTES, PNG_BYTES, MemoryStorage, serve

UPSTREAM = "https://www.galottery.com/content/dam"


def _config(tmp_path: Path, **overrides) -> HostingConfig:
    base = {
        "manifest": {"path": str(tmp_path / "data" / "_image_manifest.json"), "remote_key": "ga/_m.json"},
        "browser": {"enabled": False},
    }
    for section, values in overrides.items():
        base.setdefault(section, {}).update(values)
    return load_config(env={}, cli_overrides=base)


def _entities():
    return [
        {"gameNumber": 1, "name": "Lucky", "ticketImageUrl": f"{UPSTREAM}/1t.png", "oddsImageUrl": f"{UPSTREAM}/1o.jpg"},
        {"gameNumber": 2, "name": "Blast", "ticketImageUrl": f"{UPSTREAM}/2t.png", "oddsImageUrl": f"{UPSTREAM}/2o.jpg"},
    ]


@pytest.fixture
def upstream():
    return serve(
        {
            f"{UPSTREAM}/1t.png": (200, PNG_BYTES, "image/png"),
            f"{UPSTREAM}/1o.jpg": (200, JPEG_BYTES, "image/jpeg"),
            f"{UPSTREAM}/2t.png": (200, PNG_BYTES, "image/png"),
            f"{UPSTREAM}/2o.jpg": (200, JPEG_BYTES, "image/jpeg"),
        }
    )


def test_full_run_hosts_publishes_and_remembers(tmp_path, make_fetcher, upstream, request_log) -> None:
    storage = MemoryStorage()
    config = _config(tmp_path)
    entities = _entities()
    out_dir = tmp_path / "out"

    result = run_pipeline(
        entities, "ga/images", str(out_dir), config, storage=storage, fetcher=make_fetcher(upstream)
    )

    assert result.coverage.ratio == 1.0
    assert result.stats["uploaded"] == 4
    assert all(e["ticketImageUrl"].startswith("https://cdn.test/assets/ga/images/") for e in entities)
    index = json.loads((out_dir / "index.json").read_text())
    assert index["count"] == 2
    assert index["entities"][0]["ticketImageUrl"] == entities[0]["ticketImageUrl"]
    assert len(Manifest.load(config.manifest.path)) == 4
    assert "ga/_m.json" in storage.objects

    again = run_pipeline(
        _entities(), "ga/images", str(out_dir), config, storage=storage, fetcher=make_fetcher(upstream)
    )

    assert again.stats["manifest_hits"] == 4
    assert again.stats["fetched"] == 0
    assert request_log.count() == 4
    assert again.reconcile.delta.counts.continuing == 2


def test_remote_manifest_is_adopted(tmp_path, make_fetcher, upstream, request_log) -> None:
    storage = MemoryStorage()
    run_pipeline(
        _entities(), "ga/images", str(tmp_path / "a"), _config(tmp_path / "first"),
        storage=storage, fetcher=make_fetcher(upstream),
    )

    result = run_pipeline(
        _entities(), "ga/images", str(tmp_path / "b"), _config(tmp_path / "second"),
        storage=storage, fetcher=make_fetcher(upstream),
    )

    assert result.stats["manifest_hits"] == 4
    assert request_log.count() == 4


def test_low_coverage_fails_but_keeps_manifest(tmp_path, make_fetcher) -> None:
    only_one = serve({f"{UPSTREAM}/1t.png": (200, PNG_BYTES, "image/png")})
    config = _config(tmp_path, guards={"min_coverage": 0.9})

    with pytest.raises(RunGuardError) as excinfo:
        run_pipeline(
            _entities(), "ga/images", str(tmp_path / "out"), config,
            storage=MemoryStorage(), fetcher=make_fetcher(only_one),
        )

    assert excinfo.value.guard == "coverage"
    assert len(Manifest.load(config.manifest.path)) == 1
    assert not (tmp_path / "out" / "index.json").exists()


def test_dry_run_writes_nothing_remote(tmp_path, make_fetcher, upstream) -> None:
    storage = MemoryStorage()
    config = _config(tmp_path, ingest={"dry_run": True})

    result = run_pipeline(
        _entities(), "ga/images", str(tmp_path / "out"), config,
        storage=storage, fetcher=make_fetcher(upstream),
    )

    assert result.dry_run
    assert result.storage_name == "memory+dry-run"
    assert storage.puts == []
    assert len(result.intended_uploads) == 4
    assert not Path(config.manifest.path).exists()
    assert (tmp_path / "out" / "index.json").exists()


def test_duplicate_urls_are_reported_from_scraped_values(tmp_path, make_fetcher, upstream) -> None:
    entities = _entities()
    entities[0]["oddsImageUrl"] = entities[0]["ticketImageUrl"]

    result = run_pipeline(
        entities, "ga/images", str(tmp_path / "out"), _config(tmp_path),
        storage=MemoryStorage(), fetcher=make_fetcher(upstream),
    )

    assert result.warnings == [
        "gameNumber=1 uses the same URL for ticketImageUrl and oddsImageUrl"
    ]
