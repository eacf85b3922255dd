"""
RosterConfigSet schema.

The human-authored, reviewable source artifact for roster policy.  YAML
files are parsed into this type by the loader; services only ever see the
``RosterPolicy`` it carries.
"""

from __future__ import annotations

from dataclasses import dataclass

from roster_kernel.domain.policy import RosterPolicy


@dataclass(frozen=True)
class RosterConfigSet:
    """A parsed configuration file plus its identity."""

    config_id: str
    version: int
    policy: RosterPolicy
    checksum: str
    description: str = ""
