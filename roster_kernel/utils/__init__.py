"""Utility functions for the roster kernel."""

from roster_kernel.utils.hashing import (
    GENESIS_HASH,
    audit_chain_hash,
    canonical_json,
    payload_fingerprint,
    to_json_safe,
)

__all__ = [
    "GENESIS_HASH",
    "audit_chain_hash",
    "canonical_json",
    "payload_fingerprint",
    "to_json_safe",
]
