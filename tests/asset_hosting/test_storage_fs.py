"""Filesystem provider used for local development."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from LottoData.AssetHosting.errors import StorageError
from LottoData.AssetHosting.storage.fs_store import (
    HEADERS_SUFFIX,
    FilesystemStorageProvider,
    normalize_key,
)
from tests.asset_hosting.fakes import PNG_BYTES


def test_put_writes_object_and_header_sidecar(tmp_path: Path) -> None:
    store = FilesystemStorageProvider(str(tmp_path / "cdn"), "http://localhost:3000/cdn/")

    hosted = store.put("/ns/42/ticket-abc.png", PNG_BYTES, "image/png")

    target = tmp_path / "cdn" / "ns" / "42" / "ticket-abc.png"
    assert target.read_bytes() == PNG_BYTES
    sidecar = json.loads(Path(f"{target}{HEADERS_SUFFIX}").read_text())
    assert sidecar["Content-Type"] == "image/png"
    assert "immutable" in sidecar["Cache-Control"]
    assert hosted.key == "ns/42/ticket-abc.png"
    assert hosted.url == "http://localhost:3000/cdn/ns/42/ticket-abc.png"
    assert hosted.bytes == len(PNG_BYTES)


def test_head_reports_presence_and_size(tmp_path: Path) -> None:
    store = FilesystemStorageProvider(str(tmp_path))
    assert not store.head("ns/1/ticket.png").exists

    store.put("ns/1/ticket.png", PNG_BYTES, "image/png")

    head = store.head("ns/1/ticket.png")
    assert head.exists
    assert head.bytes == len(PNG_BYTES)


def test_put_is_idempotent(tmp_path: Path) -> None:
    store = FilesystemStorageProvider(str(tmp_path))
    first = store.put("k/a.png", PNG_BYTES, "image/png")
    second = store.put("k/a.png", PNG_BYTES, "image/png")
    assert first == second
    assert store.get("k/a.png") == PNG_BYTES


def test_get_missing_returns_none(tmp_path: Path) -> None:
    assert FilesystemStorageProvider(str(tmp_path)).get("nope.json") is None


def test_traversal_keys_are_rejected(tmp_path: Path) -> None:
    store = FilesystemStorageProvider(str(tmp_path / "cdn"))
    with pytest.raises(StorageError):
        store.put("../escape.png", PNG_BYTES, "image/png")
    assert not store.head("../escape.png").exists


def test_normalize_key() -> None:
    assert normalize_key("\\ns\\1\\a.png") == "ns/1/a.png"
    with pytest.raises(ValueError):
        normalize_key("")


def test_is_hosted_url(tmp_path: Path) -> None:
    store = FilesystemStorageProvider(str(tmp_path), "http://localhost:3000/cdn")
    assert store.is_hosted_url("http://localhost:3000/cdn/ns/1/a.png")
    assert not store.is_hosted_url("https://www.galottery.com/a.png")
