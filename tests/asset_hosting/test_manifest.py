"""Manifest persistence, tolerance of bad input and the remote mirror."""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path

import pytest

from LottoData.AssetHosting.errors import ManifestError
from LottoData.AssetHosting.manifest import Manifest, ManifestEntry
from LottoData.AssetHosting.storage.base import HostedAsset
from tests.asset_hosting.fakes import PNG_BYTES, MemoryStorage

SHA = hashlib.sha256(PNG_BYTES).hexdigest()
SOURCE = "https://www.galottery.com/content/1234_ticket.png"


def _hosted(key: str = f"ga/1234/ticket-{SHA}.png") -> HostedAsset:
    return HostedAsset(
        key=key,
        url=f"https://cdn.test/assets/{key}",
        content_type="image/png",
        bytes=len(PNG_BYTES),
        etag="e1",
    )


def test_record_save_and_reload(tmp_path: Path) -> None:
    manifest = Manifest()
    manifest.record(SOURCE, _hosted(), SHA)
    assert manifest.dirty

    path = tmp_path / "data" / "_image_manifest.json"
    manifest.save(str(path))
    assert not manifest.dirty

    raw = json.loads(path.read_text())
    assert raw[SOURCE]["contentType"] == "image/png"
    assert raw[SOURCE]["sha256"] == SHA

    reloaded = Manifest.load(str(path))
    assert SOURCE in reloaded
    assert reloaded.get(SOURCE).to_hosted() == _hosted()


def test_recording_same_entry_is_not_a_change() -> None:
    manifest = Manifest({SOURCE: ManifestEntry.from_hosted(_hosted(), SHA)})
    manifest.record(SOURCE, _hosted(), SHA)
    assert not manifest.dirty


def test_missing_file_is_empty(tmp_path: Path) -> None:
    assert len(Manifest.load(str(tmp_path / "absent.json"))) == 0


def test_malformed_file_is_empty(tmp_path: Path, caplog) -> None:
    path = tmp_path / "m.json"
    path.write_text("{not json")
    with caplog.at_level(logging.WARNING):
        assert len(Manifest.load(str(path))) == 0
    assert "not valid JSON" in caplog.text


def test_invalid_entries_are_dropped(caplog) -> None:
    good = ManifestEntry.from_hosted(_hosted(), SHA).to_json()
    data = {
        SOURCE: good,
        "https://x.test/a.png": {"key": "k", "url": "u", "bytes": 1, "contentType": "image/png", "sha256": "short"},
        "https://x.test/b.png": "not an object",
    }
    with caplog.at_level(logging.WARNING):
        manifest = Manifest.from_json(data)
    assert len(manifest) == 1
    assert "dropped 2 invalid entries" in caplog.text


def test_non_object_payload_is_empty() -> None:
    assert len(Manifest.from_json(["a", "b"])) == 0


def test_merge_only_adds_missing_sources() -> None:
    local = Manifest({SOURCE: ManifestEntry.from_hosted(_hosted(), SHA)})
    other_entry = ManifestEntry.from_hosted(_hosted("ga/9/odds.png"), SHA)
    remote = Manifest(
        {
            SOURCE: ManifestEntry.from_hosted(_hosted("ga/other.png"), SHA),
            "https://x.test/odds.png": other_entry,
        }
    )

    assert local.merge(remote) == 1
    assert local.get(SOURCE).key == f"ga/1234/ticket-{SHA}.png"
    assert local.get("https://x.test/odds.png") == other_entry


def test_discard() -> None:
    manifest = Manifest({SOURCE: ManifestEntry.from_hosted(_hosted(), SHA)})
    manifest.discard(SOURCE)
    manifest.discard(SOURCE)
    assert SOURCE not in manifest
    assert manifest.dirty


def test_remote_mirror_roundtrip() -> None:
    storage = MemoryStorage()
    manifest = Manifest()
    manifest.record(SOURCE, _hosted(), SHA)

    hosted = manifest.save_to_remote(storage, "ga/_image_manifest.json")

    _, content_type, cache_control = storage.objects["ga/_image_manifest.json"]
    assert content_type == "application/json"
    assert cache_control == "no-store"
    assert hosted.url.endswith("ga/_image_manifest.json")
    assert SOURCE in Manifest.load_from_remote(storage, "ga/_image_manifest.json")
    assert len(Manifest.load_from_remote(storage, "absent.json")) == 0


def test_save_failure_raises_manifest_error(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("x")
    with pytest.raises(ManifestError):
        Manifest().save(str(blocker / "nested" / "m.json"))


def test_stats() -> None:
    manifest = Manifest()
    manifest.record(SOURCE, _hosted(), SHA)
    manifest.record("https://x.test/dup.png", _hosted(), SHA)
    stats = manifest.stats()
    assert stats["entries"] == 2
    assert stats["unique_keys"] == 1
    assert stats["total_bytes"] == 2 * len(PNG_BYTES)
    assert stats["by_content_type"] == {"image/png": 2}
