"""Utility helpers for public share slugs."""

from __future__ import annotations

import re
import secrets
import unicodedata

SLUG_SUFFIX_BYTES = 4
_MAX_SLUG_STEM = 48
_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """Lowercase ``value`` and collapse anything non-alphanumeric into dashes."""

    normalized = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    slug = _NON_SLUG_CHARS.sub("-", normalized.lower()).strip("-")
    return slug[:_MAX_SLUG_STEM].rstrip("-")


def generate_share_slug(title: str | None) -> str:
    """Build a public share slug from a gig title plus a random suffix."""

    stem = slugify(title or "") or "gig"
    return f"{stem}-{secrets.token_hex(SLUG_SUFFIX_BYTES)}"
