"""
Key formatting for Frache.

Every stored key is "{prefix}:{namespace}:{key}"; the side record carrying
compression flag and tags lives at "{key}:meta". Logical keys may not end
in ":meta", so the two never collide.
"""

import hashlib
from typing import Optional

from ..exceptions import ValidationError

KEY_DELIMITER = ":"
META_SUFFIX = "meta"
MAX_KEY_LENGTH = 250
FORBIDDEN_KEY_CHARS = ("\r", "\n", "\t", "\0")


def _join(*parts: Optional[str]) -> str:
    return KEY_DELIMITER.join(part for part in parts if part)


def build_key(key: str, namespace: Optional[str] = None, prefix: Optional[str] = None) -> str:
    """Join prefix, namespace and key, skipping empty parts."""
    return _join(prefix, namespace, key)


def build_scan_pattern(pattern: str, namespace: Optional[str] = None, prefix: Optional[str] = None) -> str:
    """Same joining rule as build_key, applied to a SCAN MATCH pattern."""
    return _join(prefix, namespace, pattern)


def meta_key(cache_key: str) -> str:
    return f"{cache_key}{KEY_DELIMITER}{META_SUFFIX}"


def is_meta_key(key: str) -> bool:
    return key.endswith(f"{KEY_DELIMITER}{META_SUFFIX}")


def primary_key(key: str) -> str:
    """Strip the metadata suffix from a metadata key."""
    if not is_meta_key(key):
        return key
    return key[:-(len(META_SUFFIX) + 1)]


def validate_key(key: str) -> None:
    """
    Reject keys that cannot be stored.

    Raises:
        ValidationError: key is empty, not a string, longer than
            MAX_KEY_LENGTH, contains a control character or ends with the
            reserved metadata suffix
    """
    if not isinstance(key, str):
        raise ValidationError(f"Cache key must be a string, got {type(key).__name__}")
    if not key:
        raise ValidationError("Cache key must not be empty")
    if len(key) > MAX_KEY_LENGTH:
        raise ValidationError(f"Cache key exceeds {MAX_KEY_LENGTH} characters")
    if any(ch in key for ch in FORBIDDEN_KEY_CHARS):
        raise ValidationError("Cache key contains invalid characters")
    if is_meta_key(key):
        raise ValidationError(f"Cache key must not end with '{KEY_DELIMITER}{META_SUFFIX}'")


def hash_key(key: str) -> str:
    """SHA-256 hex digest, for turning arbitrary input into a fixed-size key."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()
