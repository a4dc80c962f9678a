"""Google Cloud Storage provider.

Uses application default credentials (Cloud Run service account locally or
``GOOGLE_APPLICATION_CREDENTIALS``). Objects are written non-resumably and are
expected to be publicly readable through the configured public base, either
``https://storage.googleapis.com/<bucket>`` or a CDN in front of the bucket.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..errors import StorageError
from .base import (
    DEFAULT_CACHE_CONTROL,
    MISSING,
    HeadResult,
    HostedAsset,
    StorageProvider,
    normalize_base_url,
    strip_etag,
)

logger = logging.getLogger(__name__)


class GCSStorageProvider(StorageProvider):
    """Cloud blob backend built on ``google-cloud-storage``."""

    name = "gcs"

    def __init__(self, bucket: str, public_base: str, *, client: Any = None):
        """Initialize GCS provider.

        Args:
            bucket: Bucket name
            public_base: Public URL prefix for objects in the bucket
            client: Pre-built ``google.cloud.storage.Client`` (tests)

        Raises:
            StorageError: If the library is missing or the client cannot be built
        """
        if not bucket or not public_base:
            raise StorageError("GCS provider requires bucket and public base", backend=self.name)

        self.bucket_name = bucket
        self.public_base = normalize_base_url(public_base)
        self.client = client if client is not None else self._init_client()
        self._bucket = self.client.bucket(bucket)

    def _init_client(self) -> Any:
        try:
            from google.cloud import storage
        except ImportError as exc:
            raise StorageError(
                "google-cloud-storage not installed. Install with: pip install google-cloud-storage",
                backend=self.name,
            ) from exc

        try:
            logger.info(f"Connecting to GCS bucket: {self.bucket_name}")
            return storage.Client()
        except Exception as exc:
            # google.auth raises several unrelated types for missing credentials
            raise StorageError(f"GCS client init failed: {exc}", backend=self.name) from exc

    def public_url_for(self, key: str) -> str:
        return f"{self.public_base}/{key.lstrip('/')}"

    def head(self, key: str) -> HeadResult:
        try:
            blob = self._bucket.get_blob(key)
        except Exception as exc:
            logger.debug(f"[gcs] head {key} failed: {exc}; treating as missing")
            return MISSING
        if blob is None:
            return MISSING
        return HeadResult(exists=True, etag=strip_etag(blob.etag), bytes=int(blob.size or 0))

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        cache_control: str = DEFAULT_CACHE_CONTROL,
    ) -> HostedAsset:
        blob = self._bucket.blob(key)
        blob.cache_control = cache_control
        try:
            blob.upload_from_string(data, content_type=content_type)
        except Exception as exc:
            raise StorageError(f"GCS upload failed for {key}: {exc}", backend=self.name, key=key) from exc

        hosted = HostedAsset(
            key=key,
            url=self.public_url_for(key),
            content_type=content_type,
            bytes=int(blob.size or len(data)),
            etag=strip_etag(blob.etag),
        )
        logger.info(f"[gcs] put {key} ({hosted.bytes} bytes, {content_type}) → {hosted.url}")
        return hosted

    def get(self, key: str) -> Optional[bytes]:
        try:
            blob = self._bucket.get_blob(key)
            if blob is None:
                return None
            return blob.download_as_bytes()
        except Exception as exc:
            raise StorageError(
                f"GCS download failed for {key}: {exc}", backend=self.name, key=key, operation="get"
            ) from exc
