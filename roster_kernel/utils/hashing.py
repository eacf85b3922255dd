"""
Stable digests for idempotency keys, audit chaining and config sets.

A publish replayed from another process must fingerprint identically, and
an audit chain written last year must still verify, so everything here is
built on one canonical JSON form: sorted keys, compact separators, and
UUIDs, dates, enums and recurrence rules reduced to plain text.
"""

import hashlib
import json
from datetime import date, datetime, time
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS_HASH = "0" * 64


def _encode(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if hasattr(obj, "as_payload"):
        return obj.as_payload()
    raise TypeError(f"cannot canonicalize {type(obj).__name__}")


def canonical_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode)


def to_json_safe(data: Any) -> Any:
    """``data`` with every non-JSON value replaced by its canonical text."""
    return json.loads(canonical_json(data))


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def payload_fingerprint(payload: Any) -> str:
    """SHA-256 of the canonical form; key order never changes the result."""
    return sha256_hex(canonical_json(payload))


def audit_chain_hash(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Link hash for one audit event.

    The first event in the chain links to ``GENESIS_HASH``.
    """
    return payload_fingerprint(
        [prev_hash or GENESIS_HASH, entity_type, str(entity_id), action, payload_hash]
    )
