"""S3-compatible provider against a stubbed boto3 client."""

from __future__ import annotations

import io

import boto3
import pytest
from botocore.response import StreamingBody
from botocore.stub import Stubber

from LottoData.AssetHosting.errors import StorageError
from LottoData.AssetHosting.storage.s3_store import S3StorageProvider
from tests.asset_hosting.fakes import PNG_BYTES

BUCKET = "assets"


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def stubber(s3_client):
    with Stubber(s3_client) as stub:
        yield stub
        stub.assert_no_pending_responses()


@pytest.fixture
def provider(s3_client) -> S3StorageProvider:
    return S3StorageProvider(BUCKET, "https://cdn.example.com/", client=s3_client)


def test_put_sets_headers_and_returns_public_url(provider, stubber) -> None:
    stubber.add_response(
        "put_object",
        {"ETag": '"abc123"'},
        {
            "Bucket": BUCKET,
            "Key": "ns/1/ticket-x.png",
            "Body": PNG_BYTES,
            "ContentType": "image/png",
            "CacheControl": "public, max-age=60",
        },
    )

    hosted = provider.put("ns/1/ticket-x.png", PNG_BYTES, "image/png", "public, max-age=60")

    assert hosted.url == "https://cdn.example.com/ns/1/ticket-x.png"
    assert hosted.etag == "abc123"
    assert hosted.bytes == len(PNG_BYTES)


def test_head_strips_etag_quotes(provider, stubber) -> None:
    stubber.add_response(
        "head_object",
        {"ETag": '"abc123"', "ContentLength": len(PNG_BYTES)},
        {"Bucket": BUCKET, "Key": "k.png"},
    )

    head = provider.head("k.png")

    assert head.exists
    assert head.etag == "abc123"
    assert head.bytes == len(PNG_BYTES)


@pytest.mark.parametrize("code,status", [("404", 404), ("403", 403)])
def test_head_errors_mean_missing(provider, stubber, code, status) -> None:
    stubber.add_client_error("head_object", service_error_code=code, http_status_code=status)
    assert not provider.head("absent.png").exists


def test_put_failure_raises_storage_error(provider, stubber) -> None:
    stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)

    with pytest.raises(StorageError) as excinfo:
        provider.put("k.png", PNG_BYTES, "image/png")

    assert excinfo.value.backend == "s3"
    assert excinfo.value.key == "k.png"


def test_get_reads_body(provider, stubber) -> None:
    stubber.add_response(
        "get_object",
        {"Body": StreamingBody(io.BytesIO(b"{}"), 2)},
        {"Bucket": BUCKET, "Key": "data/index.json"},
    )
    assert provider.get("data/index.json") == b"{}"


def test_get_absent_returns_none(provider, stubber) -> None:
    stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)
    assert provider.get("data/missing.json") is None


def test_get_backend_failure_raises(provider, stubber) -> None:
    stubber.add_client_error("get_object", service_error_code="AccessDenied", http_status_code=403)
    with pytest.raises(StorageError) as excinfo:
        provider.get("data/index.json")
    assert excinfo.value.operation == "get"


def test_requires_bucket_and_public_base(s3_client) -> None:
    with pytest.raises(StorageError):
        S3StorageProvider("", "https://cdn.example.com", client=s3_client)
