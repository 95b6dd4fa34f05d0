"""Input validation for product keys.

Keys end up inside LanceDB filter expressions, so they are validated against a
strict pattern before any query is built.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from product_renewal.core.errors import ValidationError

# Catalog codes such as ASINs: alphanumeric, optionally with dash/underscore.
PRODUCT_KEY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")


def validate_product_key(key: str) -> str:
    """Validate a single product key.

    Args:
        key: Product key to validate.

    Returns:
        The key with surrounding whitespace stripped.

    Raises:
        ValidationError: If the key is empty or contains disallowed characters.
    """
    if not isinstance(key, str):
        raise ValidationError(f"Product key must be a string, got {type(key).__name__}")
    key = key.strip()
    if not key:
        raise ValidationError("Product key cannot be empty")
    if not PRODUCT_KEY_PATTERN.match(key):
        raise ValidationError(
            f"Invalid product key: {key!r}. Must start with a letter or digit, contain "
            "only letters/digits/dash/underscore, and be max 64 characters."
        )
    return key


def validate_product_keys(keys: Iterable[str]) -> list[str]:
    """Validate keys, dropping duplicates while keeping first-seen order."""
    seen: dict[str, None] = {}
    for key in keys:
        seen.setdefault(validate_product_key(key), None)
    return list(seen)


def sanitize_string(value: str) -> str:
    """Escape single quotes for use in a LanceDB filter literal."""
    return value.replace("'", "''")
