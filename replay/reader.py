"""
replay.reader
AUTHOR: carter-vin

Sequential replay of spool segment files

Rules:
- batches are uploaded one at a time, before the next is decoded
- empty batches are skipped
- the first framing, decode, or upload error stops the file
- folders are walked non-recursively in listing order unless
  chronological=True (ordered by decoded serial)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from google.protobuf.message import DecodeError
from opentelemetry.proto.trace.v1.trace_pb2 import ResourceSpans

from replay.uploader import TraceUploader
from spool.errors import CorruptFrameError, DeserializeError, FrameError, TruncatedFrameError, UploadError
from spool.framing import iter_batches
from spool.naming import decode_file_name


@dataclass
class ReplayReport:
    files: int = 0
    batches: int = 0
    records: int = 0

    def add(self, other: "ReplayReport") -> None:
        self.files += other.files
        self.batches += other.batches
        self.records += other.records

    def to_dict(self) -> dict[str, int]:
        return {"files": self.files, "batches": self.batches, "records": self.records}


def _parse_record(payload: bytes, path: Path) -> ResourceSpans:
    try:
        return ResourceSpans.FromString(payload)
    except DecodeError as e:
        raise DeserializeError(f"cannot unmarshal span data from trace file {str(path)!r}: {e}") from e


def _rewrap_frame_error(e: FrameError, path: Path) -> FrameError:
    # Keep the concrete class so callers can tell corruption from truncation
    cls = CorruptFrameError if isinstance(e, CorruptFrameError) else TruncatedFrameError
    return cls(f"{e} in trace file {str(path)!r}")


def replay_file(path: str | Path, uploader: TraceUploader | None) -> ReplayReport:
    """
    Decode a segment file and upload each non-empty batch

    uploader=None decodes only (used by stats).

    Failure semantics:
    - CorruptFrameError / TruncatedFrameError / DeserializeError on bad data
    - UploadError wrapping the uploader's exception
    - batches before the failure point have already been uploaded
    """
    path = Path(path)
    report = ReplayReport(files=1)

    with path.open("rb") as handle:
        batches = iter_batches(handle)
        while True:
            try:
                payloads = next(batches, None)
            except FrameError as e:
                raise _rewrap_frame_error(e, path) from e
            if payloads is None:
                break
            if not payloads:
                continue

            records = [_parse_record(payload, path) for payload in payloads]

            if uploader is not None:
                try:
                    uploader.upload_traces(records)
                except Exception as e:
                    raise UploadError(
                        f"cannot upload {len(records)} spans from trace file {str(path)!r}: {e}",
                        path=path,
                        record_count=len(records),
                    ) from e

            report.batches += 1
            report.records += len(records)

    return report


def scan_file(path: str | Path) -> ReplayReport:
    """
    Decode a segment file without uploading
    """
    return replay_file(path, None)


def _is_skipped_name(name: str) -> bool:
    # Single-character names are not treated as hidden/meta files
    return len(name) > 1 and name[0] in ("_", ".")


def _chronological_key(name: str) -> tuple[int, int, str]:
    serial = decode_file_name(name)
    if serial is None:
        return (1, 0, name)
    return (0, serial, name)


def list_segment_files(folder_path: str | Path, *, chronological: bool = False) -> list[Path]:
    """
    Segment files of a folder, in listing order or by decoded serial
    """
    folder_path = Path(folder_path)
    names: list[str] = []
    with os.scandir(folder_path) as entries:
        for entry in entries:
            if entry.is_dir():
                continue
            if _is_skipped_name(entry.name):
                continue
            names.append(entry.name)

    if chronological:
        names.sort(key=_chronological_key)

    return [folder_path / name for name in names]


def replay_folder(
    folder_path: str | Path,
    uploader: TraceUploader | None,
    *,
    chronological: bool = False,
) -> ReplayReport:
    """
    Replay every segment file of a folder, stopping at the first failure
    """
    report = ReplayReport()
    for path in list_segment_files(folder_path, chronological=chronological):
        report.add(replay_file(path, uploader))
    return report
