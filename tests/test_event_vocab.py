"""
Contract test for event vocabulary enforcement.

The logging surface must reject unknown event types to keep aggregation stable.
"""

import io
import json

import pytest

from spool.logging import REPLAY_EVENT_TYPES, WRITER_EVENT_TYPES, emit_event, emit_failure


def test_emit_event_rejects_invalid_event_type() -> None:
    """
    Unknown event types must raise ValueError.
    """
    with pytest.raises(ValueError, match="invalid event_type"):
        emit_event("not_a_real_event", spool_version="0.1.0")


def test_emit_event_writes_one_json_line_to_stderr(capsys) -> None:
    """
    Events are compact JSON on stderr with required fields and truncated messages
    """
    emit_event(
        "spool_purge_failed",
        spool_version="0.1.0",
        folder_path="/spool/abcde",
        message="x" * 300,
    )

    captured = capsys.readouterr()
    assert captured.out == ""

    payload = json.loads(captured.err.strip())
    assert payload["event_type"] == "spool_purge_failed"
    assert payload["spool_version"] == "0.1.0"
    assert "utc_now" in payload
    assert payload["message"].startswith("x" * 200)
    assert payload["message"].endswith("[truncated 100 chars]")


def test_writer_and_replay_vocabularies_are_disjoint() -> None:
    assert not WRITER_EVENT_TYPES & REPLAY_EVENT_TYPES
    assert all(name.startswith("spool_") for name in WRITER_EVENT_TYPES)
    assert all(name.startswith("replay_") for name in REPLAY_EVENT_TYPES)


def test_emit_failure_records_error_type_and_message(capsys) -> None:
    """
    Failure events name the exception class; message defaults to str(error)
    """
    emit_failure("replay_failed", FileNotFoundError("no such file"), spool_version="0.1.0", path="/x")

    payload = json.loads(capsys.readouterr().err.strip())
    assert payload["error_type"] == "FileNotFoundError"
    assert payload["message"] == "no such file"
    assert payload["path"] == "/x"


def test_emit_event_honours_explicit_stream(capsys) -> None:
    stream = io.StringIO()

    emit_event("spool_shutdown", spool_version="0.1.0", stream=stream, errors=0)

    assert capsys.readouterr().err == ""
    assert json.loads(stream.getvalue())["event_type"] == "spool_shutdown"
