"""
spool.logging
AUTHOR: carter-vin

Structured JSON event logging for the spool writer and the replayer

Contract:
- One JSON object per line, stderr by default (stdout stays with the host / CLI)
- Event types come from a closed vocabulary, split by side
- Failure events carry error_type + a capped message
- UTC timestamps only
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

WRITER_EVENT_TYPES = frozenset(
    {
        "spool_folder_opened",
        "spool_file_closed",
        "spool_folder_retired",
        "spool_folder_purged",
        "spool_purge_failed",
        "spool_write_failed",
        "spool_write_dropped",
        "spool_shutdown",
        "spool_shutdown_failed",
    }
)

REPLAY_EVENT_TYPES = frozenset(
    {
        "replay_started",
        "replay_path_skipped",
        "replay_spans_rejected",
        "replay_failed",
        "replay_completed",
    }
)

VALID_EVENT_TYPES = WRITER_EVENT_TYPES | REPLAY_EVENT_TYPES

MESSAGE_LIMIT = 200


def _truncate_message(value: str, *, limit: int = MESSAGE_LIMIT) -> str:
    if len(value) <= limit:
        return value
    return value[:limit] + f"...[truncated {len(value) - limit} chars]"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def emit_event(
    event_type: str,
    *,
    spool_version: str,
    stream: TextIO | None = None,
    **fields: Any,
) -> None:
    """
    Write one event line

    Rules:
    - event_type in VALID_EVENT_TYPES, else ValueError
    - event_type, spool_version, utc_now always present
    - string messages capped at MESSAGE_LIMIT
    - stream is resolved per call so redirected stderr is honoured
    """
    if event_type not in VALID_EVENT_TYPES:
        raise ValueError(f"invalid event_type: {event_type}")

    if isinstance(fields.get("message"), str):
        fields["message"] = _truncate_message(fields["message"])

    payload: dict[str, Any] = {
        "event_type": event_type,
        "utc_now": utc_now_iso(),
        "spool_version": spool_version,
        **fields,
    }

    line = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    print(line, file=stream if stream is not None else sys.stderr)


def emit_failure(
    event_type: str,
    error: BaseException,
    *,
    spool_version: str,
    message: str | None = None,
    **fields: Any,
) -> None:
    """
    Failure event for a caught exception; message defaults to str(error)
    """
    emit_event(
        event_type,
        spool_version=spool_version,
        error_type=type(error).__name__,
        message=str(error) if message is None else message,
        **fields,
    )
