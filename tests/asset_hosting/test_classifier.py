"""Magic-byte classification and the PNG/JPEG allow-list."""

from __future__ import annotations

import pytest

from LottoData.AssetHosting.classifier import (
    classify,
    extension_for,
    normalize_content_type,
    sniff,
)
from LottoData.AssetHosting.errors import UnsupportedFormat
from tests.asset_hosting.fakes import HTML_BYTES, JPEG_BYTES, PNG_BYTES, WEBP_BYTES


def test_png_with_lying_text_plain_header_is_corrected() -> None:
    assert classify(PNG_BYTES, "text/plain") == "image/png"


def test_jpeg_without_declared_type() -> None:
    assert classify(JPEG_BYTES, None) == "image/jpeg"


def test_jpeg_declared_as_png_uses_signature() -> None:
    assert classify(JPEG_BYTES, "image/png; charset=binary") == "image/jpeg"


@pytest.mark.parametrize("declared", ["image/webp", "image/png", None])
def test_webp_is_rejected_whatever_the_header_says(declared) -> None:
    with pytest.raises(UnsupportedFormat) as excinfo:
        classify(WEBP_BYTES, declared)
    assert excinfo.value.detected == "webp"


def test_html_challenge_page_is_rejected() -> None:
    with pytest.raises(UnsupportedFormat) as excinfo:
        classify(HTML_BYTES, "text/html")
    assert excinfo.value.detected == "markup"
    assert excinfo.value.declared_type == "text/html"


def test_unknown_bytes_trust_an_allowed_declared_type() -> None:
    assert classify(b"\x00\x01\x02\x03", "image/jpeg") == "image/jpeg"


def test_unknown_bytes_with_unknown_type_are_not_guessed() -> None:
    with pytest.raises(UnsupportedFormat):
        classify(b"\x00\x01\x02\x03", "application/octet-stream")


def test_empty_body_is_rejected() -> None:
    with pytest.raises(UnsupportedFormat) as excinfo:
        classify(b"", "image/png")
    assert excinfo.value.detected == "empty"


def test_normalize_content_type() -> None:
    assert normalize_content_type("Image/PNG; charset=binary") == "image/png"
    assert normalize_content_type(None) == ""


def test_sniff_gif() -> None:
    assert sniff(b"GIF89a....") == "gif"


def test_extension_for() -> None:
    assert extension_for("image/png") == "png"
    assert extension_for("image/jpeg") == "jpg"
    with pytest.raises(UnsupportedFormat):
        extension_for("image/webp")
