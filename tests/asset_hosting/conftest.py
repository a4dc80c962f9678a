"""Shared fixtures for AssetHosting tests."""

from __future__ import annotations

from typing import List

import pytest

from LottoData.AssetHosting.fetcher import Fetcher
from tests.asset_hosting.fakes import MemoryStorage, RequestLog, fetcher_factory


@pytest.fixture
def request_log() -> RequestLog:
    return RequestLog()


@pytest.fixture
def make_fetcher(request_log: RequestLog):
    """Build a :class:`Fetcher` over ``httpx.MockTransport`` with no-op sleeps."""
    created: List[Fetcher] = []
    yield fetcher_factory(request_log, created)
    for fetcher in created:
        fetcher.client.close()


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()
