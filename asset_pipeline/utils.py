"""Utility helpers for ids, file names and URL handling."""

from __future__ import annotations

import hashlib
import posixpath
import re
import uuid
from urllib.parse import urljoin, urlparse

from asset_pipeline.constants import DEFAULT_IMAGE_EXTENSION, DETERMINISTIC_ID_LENGTH

SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


def slugify(value: str, fallback: str | None = None) -> str:
    """Generate a filesystem-friendly slug using ASCII characters only.

    Falls back to ``fallback`` (or a random hex string) when nothing survives.
    """
    normalized = value.encode("ascii", "ignore").decode("ascii")
    normalized = normalized.lower()
    normalized = SLUG_PATTERN.sub("-", normalized).strip("-")
    return normalized or fallback or uuid.uuid4().hex


def create_deterministic_id(*parts: str) -> str:
    """Hash the given parts into a short, stable hex id.

    Parts are concatenated without a separator, so the same page and image
    URL pair always yields the same id.
    """
    digest = hashlib.sha1()
    for part in parts:
        digest.update(part.encode("utf-8"))
    return digest.hexdigest()[:DETERMINISTIC_ID_LENGTH]


def file_name_with_ext(name: str, ext: str) -> str:
    """Slugify ``name`` and append ``ext`` (leading dot optional)."""
    return f"{slugify(name)}.{ext.lstrip('.')}"


def guess_extension_from_url(url: str) -> str:
    """Return the extension of the URL path without the dot, or ``jpg``."""
    ext = posixpath.splitext(urlparse(url).path)[1]
    if ext:
        return ext[1:]
    return DEFAULT_IMAGE_EXTENSION


def ensure_absolute(base: str, maybe_relative: str) -> str:
    """Resolve ``maybe_relative`` against ``base``."""
    try:
        return urljoin(base, maybe_relative)
    except ValueError:
        return maybe_relative
