"""Slug generation utilities."""
from __future__ import annotations

import re
import unicodedata

SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def slugify(text: str) -> str:
    """
    Convert a string to a URL-friendly slug.

    Every run of characters outside ``[a-z0-9]`` collapses to a single
    hyphen, so ``"Summer Deals!!"`` becomes ``"summer-deals"``.

    Args:
        text: The text to convert to a slug

    Returns:
        A URL-friendly slug string, empty when nothing alphanumeric remains
    """
    if not text:
        return ""

    # Normalize unicode characters and drop combining marks
    text = unicodedata.normalize('NFKD', text)
    text = text.encode('ascii', 'ignore').decode('ascii')

    # Convert to lowercase
    text = text.lower()

    # Collapse every non-alphanumeric run into one hyphen
    text = re.sub(r'[^a-z0-9]+', '-', text)

    # Strip leading and trailing hyphens
    return text.strip('-')


def is_valid_slug(slug: str | None) -> bool:
    return bool(slug) and SLUG_PATTERN.match(slug) is not None
