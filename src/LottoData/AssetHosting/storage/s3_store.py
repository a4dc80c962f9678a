# === NAVMAP v1 ===
# {
#   "module": "LottoData.AssetHosting.storage.s3_store",
#   "purpose": "S3-compatible storage provider (Cloudflare R2 and friends).",
#   "sections": [
#     {
#       "id": "s3storageprovider",
#       "name": "S3StorageProvider",
#       "anchor": "class-s3storageprovider",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""S3-compatible storage provider.

Targets Cloudflare R2 by default (``https://<account>.r2.cloudflarestorage.com``
with path-style addressing and region ``auto``) but accepts any endpoint that
speaks the S3 API. Objects are served from a separately configured public
base URL (an R2 custom domain or ``r2.dev`` bucket URL).
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

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class S3StorageProvider(StorageProvider):
    """S3-compatible backend for hosted assets.

    Thread-safe: boto3 clients may be shared between threads.
    """

    name = "s3"

    def __init__(
        self,
        bucket: str,
        public_base: str,
        *,
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        region: str = "auto",
        client: Any = None,
    ):
        """Initialize S3-compatible provider.

        Args:
            bucket: Bucket name
            public_base: Public URL prefix for objects in the bucket
            endpoint_url: S3 API endpoint (None = AWS defaults)
            access_key_id: Access key
            secret_access_key: Secret key
            region: Signing region ('auto' for R2)
            client: Pre-built boto3 S3 client (tests)

        Raises:
            StorageError: If boto3 is unavailable or the client cannot be built
        """
        if not bucket or not public_base:
            raise StorageError("S3 provider requires bucket and public base", backend=self.name)

        self.bucket = bucket
        self.public_base = normalize_base_url(public_base)
        self.endpoint_url = endpoint_url
        self.s3_client = client if client is not None else self._init_client(
            endpoint_url=endpoint_url,
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
            region=region,
        )

    def _init_client(
        self,
        *,
        endpoint_url: Optional[str],
        access_key_id: Optional[str],
        secret_access_key: Optional[str],
        region: str,
    ) -> Any:
        """Initialize S3 client."""
        try:
            import boto3
            from botocore.config import Config
        except ImportError as exc:
            raise StorageError(
                "boto3 not installed. Install with: pip install boto3", backend=self.name
            ) from exc

        config = Config(
            region_name=region,
            signature_version="s3v4",
            retries={"max_attempts": 3, "mode": "standard"},
            s3={"addressing_style": "path"},
        )
        logger.info(f"Connecting to S3-compatible bucket: {self.bucket} ({endpoint_url or 'aws'})")
        return boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=config,
        )

    def public_url_for(self, key: str) -> str:
        return f"{self.public_base}/{key.lstrip('/')}"

    def head(self, key: str) -> HeadResult:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            out = self.s3_client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code not in _NOT_FOUND_CODES:
                logger.debug(f"[s3] head {key} failed ({code}); treating as missing")
            return MISSING
        except BotoCoreError as exc:
            logger.debug(f"[s3] head {key} failed: {exc}; treating as missing")
            return MISSING
        return HeadResult(
            exists=True,
            etag=strip_etag(out.get("ETag")),
            bytes=int(out.get("ContentLength") or 0),
        )

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        cache_control: str = DEFAULT_CACHE_CONTROL,
    ) -> HostedAsset:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            out = self.s3_client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl=cache_control,
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"S3 put failed for {key}: {exc}", backend=self.name, key=key) from exc

        hosted = HostedAsset(
            key=key,
            url=self.public_url_for(key),
            content_type=content_type,
            bytes=len(data),
            etag=strip_etag(out.get("ETag")),
        )
        logger.info(f"[s3] put {key} ({hosted.bytes} bytes, {content_type}) → {hosted.url}")
        return hosted

    def get(self, key: str) -> Optional[bytes]:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            out = self.s3_client.get_object(Bucket=self.bucket, Key=key)
            return out["Body"].read()
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                return None
            raise StorageError(
                f"S3 get failed for {key}: {exc}", backend=self.name, key=key, operation="get"
            ) from exc
        except BotoCoreError as exc:
            raise StorageError(
                f"S3 get failed for {key}: {exc}", backend=self.name, key=key, operation="get"
            ) from exc
