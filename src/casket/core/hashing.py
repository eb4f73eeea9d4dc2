"""Content key computation.

A content key is ``sha256:<64 lowercase hex>``, the SHA-256 digest of the
exact bytes stored. Keys depend on content only, never on metadata, so
identical content always lands on the identical key.
"""

import hashlib
import re

KEY_PREFIX = "sha256:"

_KEY_PATTERN = re.compile(r"sha256:[0-9a-f]{64}")


def compute_key(content: bytes) -> str:
    """Compute the content key for raw bytes.

    Example:
        >>> compute_key(b"hello")
        'sha256:2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824'
    """
    return KEY_PREFIX + hashlib.sha256(content).hexdigest()


def is_valid_key(key: str) -> bool:
    """Pure format check for a content key."""
    return _KEY_PATTERN.fullmatch(key) is not None


def extract_digest(key: str) -> str:
    """Return the hex digest part of a content key.

    Raises:
        ValueError: If the key is not a well-formed content key
    """
    if not is_valid_key(key):
        raise ValueError(f"Invalid content key format: {key!r}")
    return key[len(KEY_PREFIX) :]
