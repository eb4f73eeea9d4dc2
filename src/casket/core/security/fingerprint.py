"""Secret fingerprinting using HMAC-SHA256.

Secrets (bearer token ids, refresh tokens) must never be written to logs or
stored at rest in the clear. Instead we keep a fingerprint that can verify
"same secret was presented" without revealing the secret.

Usage:
    from casket.core.security import secret_fingerprint

    # With explicit key
    fp = secret_fingerprint(refresh_token, key=signing_key)

    # With environment variable (CASKET_FINGERPRINT_KEY)
    fp = secret_fingerprint(refresh_token)
"""

from __future__ import annotations

import hashlib
import hmac
import os

_ENV_VAR = "CASKET_FINGERPRINT_KEY"

# Prefix length used when a fingerprint is only needed to correlate log lines
LOG_FINGERPRINT_LENGTH = 12


def get_fingerprint_key() -> bytes:
    """Get the fingerprint key from environment.

    Raises:
        ValueError: If CASKET_FINGERPRINT_KEY is not set
    """
    try:
        key = os.environ[_ENV_VAR]
    except KeyError:
        raise ValueError(
            f"Environment variable {_ENV_VAR} must be set for secret fingerprinting. "
            "Generate a random key and set it in your deployment environment."
        ) from None
    return key.encode("utf-8")


def resolve_fingerprint_key(configured: str | None) -> bytes:
    """Configured key if present, else the environment variable."""
    if configured is not None:
        return configured.encode("utf-8")
    return get_fingerprint_key()


def secret_fingerprint(secret: str, *, key: bytes | None = None) -> str:
    """Compute HMAC-SHA256 fingerprint of a secret.

    Args:
        secret: The secret value to fingerprint
        key: HMAC key. If not provided, reads from CASKET_FINGERPRINT_KEY env var.

    Returns:
        64-character hex string (SHA256 digest)

    Raises:
        ValueError: If key is None and CASKET_FINGERPRINT_KEY not set

    Example:
        >>> fp = secret_fingerprint("rt-abc123", key=b"my-signing-key")
        >>> len(fp)
        64
        >>> fp == secret_fingerprint("rt-abc123", key=b"my-signing-key")
        True
    """
    if key is None:
        key = get_fingerprint_key()

    return hmac.new(
        key=key,
        msg=secret.encode("utf-8"),
        digestmod=hashlib.sha256,
    ).hexdigest()


def fingerprints_match(secret: str, fingerprint: str, *, key: bytes | None = None) -> bool:
    """Constant-time check that ``secret`` produced ``fingerprint``."""
    return hmac.compare_digest(secret_fingerprint(secret, key=key), fingerprint)


def log_fingerprint(secret: str, *, key: bytes) -> str:
    """Short fingerprint prefix safe to put in log lines."""
    return secret_fingerprint(secret, key=key)[:LOG_FINGERPRINT_LENGTH]
