"""
Stable serialization for fingerprints and audit payloads.

Two payloads that mean the same thing must produce the same text: keys are
sorted, separators are compact, and ``Decimal("1000")`` and
``Decimal("1000.000000000")`` (as read back from a Numeric column) both
render as ``"1000"``.
"""

import hashlib
import json
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID


def _encode(value: Any) -> str:
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, date):  # datetime included
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    raise TypeError(f"Cannot canonicalize {type(value).__name__}")


def canonicalize_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode)


def hash_payload(payload: dict) -> str:
    """SHA-256 hex digest of ``canonicalize_json(payload)``."""
    return hashlib.sha256(canonicalize_json(payload).encode("utf-8")).hexdigest()
