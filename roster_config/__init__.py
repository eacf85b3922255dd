"""
roster_config -- single public entrypoint for roster policy.

Responsibility:
    ``get_active_config()`` is the only way services obtain configuration
    at runtime.  It loads a YAML policy file, validates it and returns a
    frozen ``RosterPolicy``.

Architecture position:
    Configuration -- sits above ``roster_kernel``.  The kernel never imports
    from ``roster_config``; callers pass the returned policy (or one of its
    sections) into service constructors.

Failure modes:
    - ``FileNotFoundError`` -- the requested file does not exist.
    - ``ValueError`` -- unknown sections or keys, or out-of-range values.

Audit relevance:
    Every successful call emits a ``ROSTER_CONFIG_TRACE`` log entry with the
    config id, version and checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from roster_config.loader import compute_checksum, load_config_set, parse_policy
from roster_config.schema import RosterConfigSet
from roster_kernel.domain.policy import RosterPolicy

_logger = logging.getLogger("roster_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> RosterPolicy:
    """Load, validate and return the active roster policy.

    Args:
        config_path: Override path to a YAML policy file.  Defaults to
            roster_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If validation fails.
    """
    config_set = load_config_set(Path(config_path) if config_path else DEFAULT_CONFIG_PATH)
    policy = config_set.policy

    _logger.info(
        "ROSTER_CONFIG_TRACE",
        extra={
            "trace_type": "ROSTER_CONFIG_TRACE",
            "config_set_id": config_set.config_id,
            "config_set_version": config_set.version,
            "checksum": config_set.checksum,
            "rate_limit_max_requests": policy.rate_limit.max_requests,
            "approval_grace_minutes": policy.approval.grace_minutes,
        },
    )
    return policy


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "RosterConfigSet",
    "compute_checksum",
    "get_active_config",
    "load_config_set",
    "parse_policy",
]
