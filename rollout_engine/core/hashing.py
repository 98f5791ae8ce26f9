"""Stable fingerprints for pod templates and step lists."""

import json
import struct
from typing import Any, Optional

_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193

# Alphabet without vowels and confusable characters
_SAFE_ALPHANUMS = "bcdfghjklmnpqrstvwxz2456789"


def fnv32a(data: bytes) -> int:
    h = _FNV32_OFFSET
    for byte in data:
        h ^= byte
        h = (h * _FNV32_PRIME) & 0xFFFFFFFF
    return h


def safe_encode(value: str) -> str:
    return "".join(_SAFE_ALPHANUMS[ord(ch) % len(_SAFE_ALPHANUMS)] for ch in value)


def canonical_json(obj: Any) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")


def compute_hash(obj: Any, collision_count: Optional[int] = None) -> str:
    """Hash a JSON-able object, optionally salted with a collision count."""
    data = canonical_json(obj)
    if collision_count is not None:
        data += struct.pack("<Q", collision_count & 0xFFFFFFFF)
    return safe_encode(str(fnv32a(data)))
