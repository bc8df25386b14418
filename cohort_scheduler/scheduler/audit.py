"""Job runner that times each invocation and emits one audit log line."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class JobResult(Protocol):
    def to_dict(self) -> dict[str, Any]: ...


JobFunc = Callable[[], Awaitable[JobResult]]


def format_audit_line(name: str, summary: dict[str, Any], elapsed_ms: int) -> str:
    """Render ``job=<name> elapsed_ms=<n> key=value ...`` for every numeric field."""
    parts = [f"job={name}", f"elapsed_ms={elapsed_ms}"]
    for key, value in summary.items():
        if isinstance(value, bool):
            continue
        if isinstance(value, int | float):
            parts.append(f"{key}={value}")
        elif isinstance(value, list):
            parts.append(f"{key}={len(value)}")
    return " ".join(parts)


async def run_job(name: str, job: JobFunc) -> dict[str, Any]:
    """Run a job and return its JSON summary.

    Never raises: anything escaping the job is logged with its traceback
    and reported as ``{"job": name, "error": "..."}``.
    """
    started = time.perf_counter()
    try:
        result = await job()
    except Exception as exc:
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.exception("Job crashed: job=%s elapsed_ms=%d", name, elapsed_ms)
        return {"job": name, "error": str(exc)}

    summary = result.to_dict()
    elapsed_ms = int((time.perf_counter() - started) * 1000)
    logger.info("Job complete: %s", format_audit_line(name, summary, elapsed_ms))
    return summary
