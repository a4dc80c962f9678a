"""Dry-run decorator that reports intended writes instead of performing them."""

from __future__ import annotations

import logging
from typing import List, Optional

from .base import DEFAULT_CACHE_CONTROL, HeadResult, HostedAsset, StorageProvider

logger = logging.getLogger(__name__)


class DryRunStorageProvider(StorageProvider):
    """Wrap a provider so reads pass through and writes are only echoed.

    ``head``/``get``/``public_url_for`` delegate to the wrapped provider so a
    dry run still reports accurate reuse decisions. Every ``put`` is recorded in
    :attr:`intended` for the run summary.
    """

    def __init__(self, inner: StorageProvider):
        self.inner = inner
        self.name = f"{inner.name}+dry-run"
        self.intended: List[HostedAsset] = []

    def head(self, key: str) -> HeadResult:
        return self.inner.head(key)

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        cache_control: str = DEFAULT_CACHE_CONTROL,
    ) -> HostedAsset:
        hosted = HostedAsset(
            key=key,
            url=self.inner.public_url_for(key),
            content_type=content_type,
            bytes=len(data),
        )
        self.intended.append(hosted)
        logger.info(f"[dry-run] put {key} ({len(data)} bytes) → {hosted.url}")
        return hosted

    def get(self, key: str) -> Optional[bytes]:
        return self.inner.get(key)

    def public_url_for(self, key: str) -> str:
        return self.inner.public_url_for(key)

    def is_hosted_url(self, url: str) -> bool:
        return self.inner.is_hosted_url(url)

    def close(self) -> None:
        self.inner.close()
