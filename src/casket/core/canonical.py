"""
Canonical JSON serialization for deterministic hashing.

Two-phase approach:
1. Normalize: Convert tuples and enums to JSON-safe primitives (our code)
2. Serialize: Produce deterministic JSON per RFC 8785/JCS (rfc8785 package)

Structured DAG nodes are stored as canonical JSON, so the same structure
always yields the same bytes and therefore the same content key.

IMPORTANT: NaN and Infinity are strictly REJECTED, not silently converted.
"""

import math
from enum import Enum
from typing import Any

import rfc8785


def _normalize_value(obj: Any) -> Any:
    """Convert a value to a JSON-safe primitive.

    Raises:
        ValueError: If value contains NaN or Infinity, or is not serializable
    """
    if isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            raise ValueError(f"Cannot canonicalize non-finite float: {obj}.")
        return obj

    if isinstance(obj, Enum):
        return _normalize_value(obj.value)

    if obj is None or isinstance(obj, (str, int, bool)):
        return obj

    if isinstance(obj, (list, tuple)):
        return [_normalize_value(x) for x in obj]

    if isinstance(obj, dict):
        normalized = {}
        for k, v in obj.items():
            if not isinstance(k, str):
                raise ValueError(f"Canonical JSON keys must be strings, got {type(k).__name__}")
            normalized[k] = _normalize_value(v)
        return normalized

    raise ValueError(f"Cannot canonicalize value of type {type(obj).__name__}")


def canonical_bytes(obj: Any) -> bytes:
    """Serialize to RFC 8785 canonical JSON bytes."""
    return rfc8785.dumps(_normalize_value(obj))
