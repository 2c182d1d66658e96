from __future__ import annotations

import json
import logging
import time
from typing import Any

from cidlens.app.observability.contracts import AttemptTrace

RESOLUTION_EVENT = "resolution_event"


def elapsed_ms(started_at: float) -> int:
    return max(int((time.perf_counter() - started_at) * 1000), 0)


def attempt_trace(
    tier: str,
    target: str,
    started_at: float,
    *,
    status: str = "ok",
    error_message: str | None = None,
) -> AttemptTrace:
    return AttemptTrace(
        tier=tier,
        target=target,
        latency_ms=elapsed_ms(started_at),
        status=status,
        error_message=error_message,
    )


def emit_resolution_event(
    event: str,
    *,
    identifier: str,
    kind: str,
    logger: logging.Logger | None = None,
    **fields: Any,
) -> None:
    active_logger = logger or logging.getLogger(__name__)
    payload = {
        "event": event,
        "identifier": identifier,
        "kind": kind,
        **{key: value for key, value in fields.items() if value is not None},
    }
    active_logger.info(
        "%s %s", RESOLUTION_EVENT, json.dumps(payload, sort_keys=True, default=str)
    )
