"""Utilities for generating consistent, length-limited slugs."""

from __future__ import annotations

import hashlib
import re
from typing import Pattern

_LOWERCASE_PATTERN: Pattern[str] = re.compile(r"[^a-z0-9_.-]+")
_INVALID_FILENAME_CHARS: Pattern[str] = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_WHITESPACE: Pattern[str] = re.compile(r"\s+")
_HYPHEN_COLLAPSE = re.compile(r"-{2,}")

DOCUMENT_SLUG_LENGTH = 50


def slugify(value: str | None, *, fallback: str = "item", max_length: int = 80) -> str:
    """Normalize ``value`` into a strict ASCII slug used for log filenames."""
    source = (value or "").strip().lower() or fallback.lower()
    slug = _normalize(source, _LOWERCASE_PATTERN)
    if not slug:
        slug = _normalize(fallback.lower(), _LOWERCASE_PATTERN) or "item"
    if len(slug) > max_length:
        slug = abbreviate_slug(slug, fallback=fallback, max_length=max_length)
    return slug


def abbreviate_slug(segment: str, *, fallback: str = "item", max_length: int = 80) -> str:
    """Trim ``segment`` to ``max_length`` while preserving uniqueness via hashing."""
    slug = segment.strip("-") or fallback.strip("-") or "item"
    if len(slug) <= max_length:
        return slug

    digest = hashlib.sha256(slug.encode("utf-8")).hexdigest()[:8]
    prefix_length = max(max_length - len(digest) - 1, 1)
    prefix = slug[:prefix_length].rstrip("-")
    if not prefix:
        prefix = slug[:prefix_length]
    return f"{prefix}-{digest}"


def document_slug(
    value: str | None,
    *,
    fallback: str = "plan",
    max_length: int = DOCUMENT_SLUG_LENGTH,
) -> str:
    """Turn a goal into the human-readable stem of a plan or review document.

    The text is truncated first, then filesystem-invalid characters and whitespace
    runs become hyphens, hyphen runs collapse, edge hyphens are trimmed, and the
    result is lowercased. Non-ASCII letters are kept.
    """
    source = (value or "")[:max_length]
    slug = _INVALID_FILENAME_CHARS.sub("-", source)
    slug = _WHITESPACE.sub("-", slug)
    slug = _HYPHEN_COLLAPSE.sub("-", slug).strip("-").lower()
    return slug or fallback


def _normalize(value: str, pattern: Pattern[str]) -> str:
    slug = pattern.sub("-", value)
    slug = _HYPHEN_COLLAPSE.sub("-", slug)
    return slug.strip("-")


__all__ = ["DOCUMENT_SLUG_LENGTH", "abbreviate_slug", "document_slug", "slugify"]
