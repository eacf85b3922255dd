"""
Configuration Loader (``roster_config.loader``).

Responsibility
--------------
Loads a YAML policy file and parses it into a ``RosterConfigSet``.  The
single public entry point for runtime config is
``roster_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown top-level sections and unknown keys inside a section raise
  ``ValueError``; a typo never silently falls back to a default.
* Value validation is done by the policy dataclasses' ``__post_init__``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the parsed
  file content.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad section shape or value  -> ``ValueError``.
"""

from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Any

import yaml

from roster_config.schema import RosterConfigSet
from roster_kernel.domain.lifecycle import MemberRole
from roster_kernel.domain.policy import (
    ApprovalPolicy,
    IdempotencyPolicy,
    NotificationPolicy,
    PunchPolicy,
    RateLimitPolicy,
    RosterPolicy,
    SchedulingPolicy,
)
from roster_kernel.utils.hashing import payload_fingerprint

_IDENTITY_KEYS = frozenset({"config_id", "version", "description"})

_SECTIONS: dict[str, type] = {
    "scheduling": SchedulingPolicy,
    "rate_limit": RateLimitPolicy,
    "idempotency": IdempotencyPolicy,
    "punch": PunchPolicy,
    "approval": ApprovalPolicy,
    "notifications": NotificationPolicy,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def _section_kwargs(name: str, data: Any) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"section '{name}' must be a mapping")
    allowed = {f.name for f in dataclasses.fields(_SECTIONS[name])}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValueError(f"section '{name}' has unknown keys: {', '.join(unknown)}")
    return dict(data)


def parse_approval(data: Any) -> ApprovalPolicy:
    kwargs = _section_kwargs("approval", data)
    if "approver_roles" in kwargs:
        kwargs["approver_roles"] = frozenset(MemberRole(r) for r in kwargs["approver_roles"])
    return ApprovalPolicy(**kwargs)


def parse_notifications(data: Any) -> NotificationPolicy:
    kwargs = _section_kwargs("notifications", data)
    if "reminder_offsets_minutes" in kwargs:
        kwargs["reminder_offsets_minutes"] = tuple(kwargs["reminder_offsets_minutes"])
    return NotificationPolicy(**kwargs)


def parse_policy(data: dict[str, Any]) -> RosterPolicy:
    """Build a ``RosterPolicy`` from the section mappings of a config file."""
    unknown = sorted(set(data) - set(_SECTIONS) - _IDENTITY_KEYS)
    if unknown:
        raise ValueError(f"unknown configuration sections: {', '.join(unknown)}")
    return RosterPolicy(
        scheduling=SchedulingPolicy(**_section_kwargs("scheduling", data.get("scheduling"))),
        rate_limit=RateLimitPolicy(**_section_kwargs("rate_limit", data.get("rate_limit"))),
        idempotency=IdempotencyPolicy(**_section_kwargs("idempotency", data.get("idempotency"))),
        punch=PunchPolicy(**_section_kwargs("punch", data.get("punch"))),
        approval=parse_approval(data.get("approval")),
        notifications=parse_notifications(data.get("notifications")),
    )


def parse_config_set(data: dict[str, Any]) -> RosterConfigSet:
    return RosterConfigSet(
        config_id=str(data.get("config_id", "default")),
        version=int(data.get("version", 1)),
        description=str(data.get("description", "")),
        policy=parse_policy(data),
        checksum=compute_checksum(data),
    )


def load_config_set(path: Path) -> RosterConfigSet:
    return parse_config_set(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    return payload_fingerprint(data)
