"""Security utilities for casket."""

from casket.core.security.fingerprint import (
    fingerprints_match,
    get_fingerprint_key,
    log_fingerprint,
    resolve_fingerprint_key,
    secret_fingerprint,
)

__all__ = [
    "fingerprints_match",
    "get_fingerprint_key",
    "log_fingerprint",
    "resolve_fingerprint_key",
    "secret_fingerprint",
]
