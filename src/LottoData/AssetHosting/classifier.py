"""Magic-byte classification with a PNG/JPEG allow-list.

Magic bytes win over the declared ``Content-Type``: a PNG served as
``text/plain`` is accepted as ``image/png`` and WEBP bytes are rejected even
when the server claims ``image/png``. Declared types are trusted only when the
bytes carry no recognisable signature at all.
"""

from __future__ import annotations

import logging

from .errors import UnsupportedFormat

__all__ = [
    "ALLOWED_CONTENT_TYPES",
    "classify",
    "extension_for",
    "normalize_content_type",
    "sniff",
]

LOGGER = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = frozenset({"image/png", "image/jpeg"})

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
JPEG_SIGNATURE = b"\xff\xd8\xff"

_EXTENSIONS = {"image/png": "png", "image/jpeg": "jpg"}


def normalize_content_type(value: str | None) -> str:
    """Lower-case a Content-Type header and drop its parameters."""
    if not value:
        return ""
    return value.split(";", 1)[0].strip().lower()


def sniff(content: bytes) -> str | None:
    """Return a short format name for known signatures, else ``None``."""
    if content.startswith(PNG_SIGNATURE):
        return "png"
    if content.startswith(JPEG_SIGNATURE):
        return "jpeg"
    if len(content) >= 12 and content[:4] == b"RIFF" and content[8:12] == b"WEBP":
        return "webp"
    if content[:6] in (b"GIF87a", b"GIF89a"):
        return "gif"
    if content.lstrip()[:1] == b"<":
        return "markup"
    return None


def classify(content: bytes, declared_type: str | None) -> str:
    """Return the effective content type for ``content`` or raise.

    Args:
        content: Raw bytes as downloaded
        declared_type: ``Content-Type`` reported by the upstream, if any

    Returns:
        ``"image/png"`` or ``"image/jpeg"``

    Raises:
        UnsupportedFormat: Empty body, a non-raster signature, or a declared
            type outside the allow-list with no PNG/JPEG signature.
    """
    declared = normalize_content_type(declared_type)
    if not content:
        raise UnsupportedFormat("empty body", declared_type=declared or None, detected="empty")

    detected = sniff(content)
    if detected == "png":
        effective = "image/png"
    elif detected == "jpeg":
        effective = "image/jpeg"
    elif detected is None and declared in ALLOWED_CONTENT_TYPES:
        effective = declared
    else:
        raise UnsupportedFormat(
            f"unsupported image bytes (declared {declared or '(none)'}, detected {detected or 'unknown'})",
            declared_type=declared or None,
            detected=detected,
        )

    if declared and declared != effective:
        LOGGER.debug(f"Corrected content type {declared} -> {effective} from magic bytes")
    return effective


def extension_for(content_type: str) -> str:
    """Map an allowed content type to its file extension."""
    try:
        return _EXTENSIONS[normalize_content_type(content_type)]
    except KeyError:
        raise UnsupportedFormat(
            f"no extension for {content_type}", declared_type=content_type
        ) from None
