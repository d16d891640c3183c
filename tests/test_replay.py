"""
Contract tests for replaying spool files to an uploader
"""

import os
from pathlib import Path

import pytest
from opentelemetry.proto.trace.v1.trace_pb2 import ResourceSpans, ScopeSpans, Span

from replay.reader import list_segment_files, replay_file, replay_folder, scan_file
from spool.errors import CorruptFrameError, DeserializeError, TruncatedFrameError, UploadError
from spool.framing import encode_batch
from spool.naming import file_name, folder_name, hour_bucket

from conftest import BASE_TIME


def _record(name: str) -> bytes:
    message = ResourceSpans(scope_spans=[ScopeSpans(spans=[Span(name=name, trace_id=b"\x01" * 16)])])
    return message.SerializeToString()


def _names(records) -> list[str]:
    return [span.name for rs in records for scope in rs.scope_spans for span in scope.spans]


class RecordingUploader:
    def __init__(self, fail_on_call: int | None = None) -> None:
        self.batches: list[list[str]] = []
        self.calls = 0
        self.fail_on_call = fail_on_call

    def upload_traces(self, records) -> None:
        self.calls += 1
        if self.fail_on_call is not None and self.calls == self.fail_on_call:
            raise RuntimeError("collector unavailable")
        self.batches.append(_names(records))


def test_replay_folder_matches_written_batches(make_writer, spool_dir: Path) -> None:
    """
    Replay in serial order yields every written batch, across rotations
    """
    writer = make_writer(file_size_limit=1024)
    written = [[f"span-{i}-{j}" for j in range(3)] for i in range(20)]
    for batch in written:
        writer.export([_record(name) for name in batch])
    writer.shutdown()

    folder = spool_dir / folder_name(hour_bucket(BASE_TIME))
    assert len(list_segment_files(folder)) > 1

    uploader = RecordingUploader()
    report = replay_folder(folder, uploader, chronological=True)

    assert uploader.batches == written
    assert report.batches == 20
    assert report.records == 60


def test_replay_skips_meta_hidden_and_subdirectories(tmp_path: Path) -> None:
    """
    Names longer than one char starting with '_' or '.' are skipped; '_' alone is not
    """
    (tmp_path / "0000").write_bytes(encode_batch([_record("segment")]))
    (tmp_path / "_").write_bytes(encode_batch([_record("single-char")]))
    (tmp_path / "_index").write_text("0000\tx - y\n", encoding="utf-8")
    (tmp_path / "_t").write_text("marker\n", encoding="utf-8")
    (tmp_path / ".hidden").write_bytes(b"not a frame")
    (tmp_path / "nested").mkdir()
    (tmp_path / "nested" / "0000").write_bytes(encode_batch([_record("nested")]))

    uploader = RecordingUploader()
    report = replay_folder(tmp_path, uploader)

    assert sorted(name for batch in uploader.batches for name in batch) == ["segment", "single-char"]
    assert report.files == 2


def test_listing_order_is_preserved_unless_chronological(tmp_path: Path) -> None:
    (tmp_path / file_name(0x10000)).write_bytes(encode_batch([_record("later")]))
    (tmp_path / file_name(0xFFFF)).write_bytes(encode_batch([_record("earlier")]))

    listed = [entry.name for entry in os.scandir(tmp_path)]
    assert [p.name for p in list_segment_files(tmp_path)] == listed

    uploader = RecordingUploader()
    replay_folder(tmp_path, uploader, chronological=True)
    assert uploader.batches == [["earlier"], ["later"]]


def test_empty_batches_are_not_uploaded(tmp_path: Path) -> None:
    path = tmp_path / "0000"
    path.write_bytes(b"\x00\x00\x00\x00" + encode_batch([_record("a")]))

    uploader = RecordingUploader()
    report = replay_file(path, uploader)

    assert uploader.batches == [["a"]]
    assert report.batches == 1


def test_truncated_file_uploads_complete_batches_first(tmp_path: Path) -> None:
    """
    Batches before the truncation point are uploaded, then replay fails
    """
    path = tmp_path / "0000"
    data = b"".join(encode_batch([_record(f"b{i}")]) for i in range(3))
    path.write_bytes(data[:-2])

    uploader = RecordingUploader()
    with pytest.raises(TruncatedFrameError, match="0000"):
        replay_file(path, uploader)

    assert uploader.batches == [["b0"], ["b1"]]


def test_negative_record_size_is_corrupt(tmp_path: Path) -> None:
    path = tmp_path / "0000"
    path.write_bytes(b"\x01\x00\x00\x00" + b"\xfe\xff\xff\xff")

    with pytest.raises(CorruptFrameError):
        replay_file(path, RecordingUploader())


def test_bad_payload_is_deserialize_error(tmp_path: Path) -> None:
    path = tmp_path / "0000"
    # Length-delimited field claiming 5 bytes with only 2 present
    path.write_bytes(encode_batch([b"\x0a\x05ab"]))

    with pytest.raises(DeserializeError):
        replay_file(path, RecordingUploader())


def test_upload_failure_stops_replay(tmp_path: Path) -> None:
    """
    Uploader errors are wrapped with path and record count; later batches are not sent
    """
    path = tmp_path / "0000"
    path.write_bytes(
        encode_batch([_record("ok")])
        + encode_batch([_record("fail-1"), _record("fail-2")])
        + encode_batch([_record("never")])
    )

    uploader = RecordingUploader(fail_on_call=2)
    with pytest.raises(UploadError) as excinfo:
        replay_file(path, uploader)

    assert excinfo.value.record_count == 2
    assert excinfo.value.path == str(path)
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert uploader.batches == [["ok"]]
    assert uploader.calls == 2


def test_folder_replay_stops_at_first_failing_file(tmp_path: Path) -> None:
    (tmp_path / file_name(0)).write_bytes(encode_batch([_record("first")]))
    (tmp_path / file_name(1)).write_bytes(b"\x01\x00")
    (tmp_path / file_name(2)).write_bytes(encode_batch([_record("third")]))

    uploader = RecordingUploader()
    with pytest.raises(TruncatedFrameError):
        replay_folder(tmp_path, uploader, chronological=True)

    assert uploader.batches == [["first"]]


def test_scan_file_counts_without_uploading(tmp_path: Path) -> None:
    path = tmp_path / "0000"
    path.write_bytes(encode_batch([_record("a"), _record("b")]) + encode_batch([_record("c")]))

    report = scan_file(path)

    assert report.to_dict() == {"files": 1, "batches": 2, "records": 3}
