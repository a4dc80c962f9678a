"""Content addressing: SHA-256 digests and deterministic storage keys.

Key templates carry a namespace plus ``<sha>`` and ``<ext>`` tokens::

    key_template_for("ga/scratchers/images", 1234, "ticket")
    -> "ga/scratchers/images/1234/ticket-<sha>.<ext>"

Identical bytes under the same template always yield the same key; a changed
image yields a new key instead of overwriting the old object.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from .classifier import extension_for

__all__ = [
    "Address",
    "SHA_TOKEN",
    "EXT_TOKEN",
    "address_for",
    "key_template_for",
    "sha256_hex",
    "template_directory",
]

SHA_TOKEN = "<sha>"
EXT_TOKEN = "<ext>"


@dataclass(frozen=True)
class Address:
    """Storage key and digest computed for one payload."""

    key: str
    sha256: str
    extension: str


def sha256_hex(content: bytes) -> str:
    """Return the lowercase hex SHA-256 of ``content``."""
    return hashlib.sha256(content).hexdigest()


def key_template_for(namespace: str, entity_id: object, kind: str) -> str:
    """Build ``<namespace>/<entityId>/<kind>-<sha>.<ext>``."""
    ns = namespace.strip("/")
    if not ns:
        raise ValueError("namespace must not be empty")
    if not kind or "/" in kind:
        raise ValueError(f"invalid asset kind: {kind!r}")
    entity = str(entity_id).strip("/")
    if not entity:
        raise ValueError("entity id must not be empty")
    return f"{ns}/{entity}/{kind}-{SHA_TOKEN}.{EXT_TOKEN}"


def template_directory(key_template: str) -> str:
    """Return the directory prefix (with trailing slash) of a key template.

    Returns an empty string when the template has no directory component.
    """
    head, sep, _ = key_template.lstrip("/").rpartition("/")
    return f"{head}/" if sep else ""


def address_for(content: bytes, content_type: str, key_template: str) -> Address:
    """Hash ``content`` and substitute the digest into ``key_template``.

    A template without ``<sha>`` is treated as a bare prefix and receives
    ``-<sha>.<ext>`` as a suffix.
    """
    digest = sha256_hex(content)
    ext = extension_for(content_type)
    template = key_template.lstrip("/")
    if SHA_TOKEN in template:
        key = template.replace(SHA_TOKEN, digest).replace(EXT_TOKEN, ext)
    else:
        key = f"{template}-{digest}.{ext}"
    return Address(key=key, sha256=digest, extension=ext)
