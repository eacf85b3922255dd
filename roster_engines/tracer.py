"""
roster_engines.tracer -- ROSTER_ENGINE_TRACE records for the pure engines.

``@traced_engine`` logs, at DEBUG, which engine ran (name and version), a
short fingerprint of the inputs that determine its output, how long it took
and how many items it produced.  Two publishes that expand the same anchor
dates under the same rule show the same fingerprint, which is enough to
line up a replay with the original run in the logs.

The decorator only logs: it never touches arguments or results, and the
engines stay free of I/O.  Records go to ``roster_kernel.engines.tracer`` so
the kernel's JSON formatter renders them.

Usage:
    @traced_engine("recurrence", "1.0", fingerprint_fields=("dates", "rule"))
    def expand_recurring_dates(dates, rule, max_dates=365):
        ...
"""

from __future__ import annotations

import functools
import inspect
import logging
import time
from collections.abc import Callable, Sized
from typing import Any

from roster_kernel.utils.hashing import payload_fingerprint

_logger = logging.getLogger("roster_kernel.engines.tracer")

FINGERPRINT_LENGTH = 16


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: dict[str, Any],
) -> str:
    """First 16 hex chars of the canonical hash of the named arguments.

    A field that was not passed hashes the same as an explicit ``None``.
    """
    selected = {name: arguments.get(name) for name in fingerprint_fields}
    return payload_fingerprint(selected)[:FINGERPRINT_LENGTH]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """
    Args:
        engine_name: Engine identifier, e.g. "recurrence".
        engine_version: Bumped whenever the engine's output changes for the
            same inputs.
        fingerprint_fields: Parameter names hashed into
            ``input_fingerprint``.  Arguments are matched by name, however
            they were passed.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fingerprint = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 3)

            if _logger.isEnabledFor(logging.DEBUG):
                _logger.debug(
                    "ROSTER_ENGINE_TRACE",
                    extra={
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "input_fingerprint": fingerprint,
                        "duration_ms": elapsed_ms,
                        "result_size": len(result) if isinstance(result, Sized) else None,
                        "function": func.__qualname__,
                    },
                )
            return result

        return wrapper

    return decorator
