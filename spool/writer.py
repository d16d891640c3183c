"""
spool.writer
AUTHOR: carter-vin

Rotating on-disk spool writer for span record batches

OUTPUT:
- <base>/<hour folder>/<serial file>: framed batches (see spool.framing)
- <base>/<hour folder>/_index: one line per closed segment file
- <base>/<hour folder>/_t: retirement marker, overwritten on each retirement

Rotation:
- same hour, file has room (or is empty): keep writing
- same hour, file full: close it, open serial + 1
- hour changed: close file, retire folder (skipped if it no longer exists),
  open new folder, purge
- a new folder starts at serial 0; a folder left by an earlier writer resumes
  after its highest serial so existing segments are never truncated
- serial past OUTPUT_SN_BOUNDARY: no file is opened and the batch is dropped

Design goals:
- One lock guards rotation decision + write (and shutdown)
- Flush per write so replay can pick up data after a crash
- Explicit error surfaces; the only silent path is the serial exhaustion drop,
  which is counted and logged
"""

from __future__ import annotations

import base64
import os
import struct
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Callable, Sequence

from spool.config import SPOOL_VERSION, SpoolConfig
from spool.errors import SpoolIOError
from spool.framing import encode_batch
from spool.logging import emit_event, emit_failure
from spool.naming import (
    INDEX_FILE_NAME,
    TIMESTAMP_FILE_NAME,
    decode_file_name,
    file_name,
    folder_name,
    hour_bucket,
)
from spool.retention import PurgeReport, purge_expired_folders

OUTPUT_SN_BOUNDARY = 0x7FFFFFFD

RFC3339_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

STATUS_WRITTEN = "written"
STATUS_DROPPED = "dropped"
STATUS_EMPTY = "empty"


def rfc3339(unix_seconds: float) -> str:
    return datetime.fromtimestamp(int(unix_seconds), timezone.utc).strftime(RFC3339_FORMAT)


def timestamp_marker_content(unix_seconds: float) -> str:
    """
    Three lines: unpadded url-safe base64 of the 8-byte LE seconds,
    decimal seconds, RFC3339
    """
    seconds = int(unix_seconds)
    packed = struct.pack("<Q", seconds & 0xFFFFFFFFFFFFFFFF)
    encoded = base64.urlsafe_b64encode(packed).rstrip(b"=").decode("ascii")
    return f"{encoded}\n{seconds}\n{rfc3339(seconds)}\n"


def index_line(segment_name: str, started_at: float, last_write_at: float) -> str:
    return f"{segment_name}\t{rfc3339(started_at)} - {rfc3339(last_write_at)}\n"


@dataclass(frozen=True)
class ExportResult:
    """
    Outcome of one export call
    - status: "written" | "dropped" | "empty"
    - file_path: segment file the batch landed in (written only)
    """

    status: str
    records: int = 0
    bytes_written: int = 0
    file_path: Path | None = None

    @property
    def written(self) -> bool:
        return self.status == STATUS_WRITTEN

    @property
    def dropped(self) -> bool:
        return self.status == STATUS_DROPPED


@dataclass
class WriterStats:
    batches_written: int = 0
    bytes_written: int = 0
    batches_dropped: int = 0
    files_closed: int = 0
    folders_retired: int = 0
    purge_failures: int = 0


@dataclass
class RotationState:
    """
    Mutable rotation state, owned by one SpoolWriter

    Invariant: current_size == 0 iff no file is open or nothing was written yet.
    """

    hour: int | None = None
    serial: int = 0
    folder_path: Path | None = None
    index_path: Path | None = None
    file_name: str = ""
    handle: BinaryIO | None = None
    current_size: int = 0
    started_at: float = 0.0
    last_write_at: float = 0.0

    @property
    def file_path(self) -> Path | None:
        if self.folder_path is None or not self.file_name:
            return None
        return self.folder_path / self.file_name


def _next_serial_in(folder: Path) -> int:
    """
    First unused serial in a folder left by an earlier writer
    """
    highest = -1
    with os.scandir(folder) as entries:
        for entry in entries:
            if entry.is_dir():
                continue
            serial = decode_file_name(entry.name)
            if serial is not None and serial > highest:
                highest = serial
    return highest + 1


def _private_file_opener(path: str, flags: int) -> int:
    return os.open(path, flags, 0o600)


class SpoolWriter:
    """
    Spool writer entry point

    export() may be called from several threads; calls are serialized.
    """

    def __init__(self, config: SpoolConfig, *, clock: Callable[[], float] = time.time) -> None:
        self.config = config
        self.state = RotationState()
        self.last_purge: PurgeReport | None = None
        self._clock = clock
        self._lock = threading.Lock()
        self._stats = WriterStats()

    # -----------------------------
    # PUBLIC
    # -----------------------------
    def export(self, records: Sequence[bytes]) -> ExportResult:
        """
        Append one batch of serialized span records

        Failure semantics:
        - raises SpoolIOError on mkdir/open/write failures
        - returns status "dropped" when the serial space of the hour is exhausted
        """
        buf = encode_batch(records)
        if not buf:
            return ExportResult(status=STATUS_EMPTY)

        with self._lock:
            self._prepare_output(len(buf))

            state = self.state
            if state.handle is None:
                self._stats.batches_dropped += 1
                emit_event(
                    "spool_write_dropped",
                    spool_version=SPOOL_VERSION,
                    folder_path=str(state.folder_path),
                    serial=state.serial,
                    records=len(records),
                    bytes=len(buf),
                )
                return ExportResult(status=STATUS_DROPPED, records=len(records))

            try:
                state.handle.write(buf)
                state.handle.flush()
            except OSError as e:
                path = state.file_path
                errors: list[BaseException] = [e]
                # Give up on this segment; the next call opens serial + 1
                try:
                    self._close_file()
                except SpoolIOError as close_error:
                    errors.append(close_error)
                raise SpoolIOError(
                    f"cannot write {len(records)} spans to output file {str(path)!r}",
                    path=path,
                    errors=errors,
                ) from e

            state.last_write_at = self._clock()
            state.current_size += len(buf)
            self._stats.batches_written += 1
            self._stats.bytes_written += len(buf)

            return ExportResult(
                status=STATUS_WRITTEN,
                records=len(records),
                bytes_written=len(buf),
                file_path=state.file_path,
            )

    def shutdown(self) -> None:
        """
        Close the open file and retire the open folder

        Safe to call when nothing was ever written. All sub-errors are
        collected and raised together.
        """
        with self._lock:
            errors: list[BaseException] = []
            try:
                self._close_file()
            except SpoolIOError as e:
                errors.append(e)
            try:
                self._retire_folder()
            except SpoolIOError as e:
                errors.append(e)

            emit_event(
                "spool_shutdown",
                spool_version=SPOOL_VERSION,
                folder_path=str(self.state.folder_path),
                errors=len(errors),
            )

            if errors:
                raise SpoolIOError("caught failure on shutdown spool writer", errors=errors)

    def stats(self) -> WriterStats:
        with self._lock:
            return replace(self._stats)

    # -----------------------------
    # ROTATION
    # -----------------------------
    def _prepare_output(self, record_size: int) -> None:
        now = self._clock()
        hour = hour_bucket(now)
        state = self.state

        if state.hour is not None and hour == state.hour:
            if state.current_size != 0 and state.current_size + record_size <= self.config.file_size_limit:
                return
            self._close_file()
            if state.folder_path is None:
                self._open_folder(hour)
            else:
                # Folder may have been removed underneath us
                self._make_folder(state.folder_path)
        else:
            errors: list[BaseException] = []
            try:
                self._close_file()
            except SpoolIOError as e:
                errors.append(e)
            try:
                self._retire_folder()
            except SpoolIOError as e:
                errors.append(e)
            if errors:
                raise SpoolIOError(f"cannot switch to new hour {hour}", errors=errors)

            self._open_folder(hour)
            self._purge(now)

        if state.serial > OUTPUT_SN_BOUNDARY:
            return

        self._open_file(now)

    def _make_folder(self, path: Path) -> None:
        try:
            path.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as e:
            raise SpoolIOError(f"cannot create output folder {str(path)!r}", path=path) from e

    def _open_folder(self, hour: int) -> None:
        """
        Create the folder for a masked hour and reset the serial

        State fields are only updated once the folder exists.
        """
        path = self.config.base_folder_path / folder_name(hour)
        self._make_folder(path)

        try:
            serial = _next_serial_in(path)
        except OSError as e:
            raise SpoolIOError(f"cannot list output folder {str(path)!r}", path=path) from e

        state = self.state
        state.folder_path = path
        state.index_path = path / INDEX_FILE_NAME
        state.hour = hour
        state.serial = serial

        emit_event(
            "spool_folder_opened",
            spool_version=SPOOL_VERSION,
            folder_path=str(path),
            hour=hour,
            serial=serial,
        )

    def _open_file(self, now: float) -> None:
        state = self.state
        name = file_name(state.serial)
        path = state.folder_path / name
        try:
            handle = open(path, "wb", opener=_private_file_opener)
        except OSError as e:
            raise SpoolIOError(f"cannot create output file {str(path)!r}", path=path) from e

        state.file_name = name
        state.handle = handle
        state.started_at = now
        state.last_write_at = now
        state.current_size = 0

    def _close_file(self) -> None:
        """
        Close the open segment, append its index record, advance the serial
        """
        state = self.state
        if state.handle is None:
            return

        errors: list[BaseException] = []
        try:
            state.handle.close()
        except OSError as e:
            errors.append(e)
        state.handle = None
        state.current_size = 0

        try:
            self._append_index_record()
        except OSError as e:
            errors.append(e)

        state.serial += 1
        self._stats.files_closed += 1

        emit_event(
            "spool_file_closed",
            spool_version=SPOOL_VERSION,
            file_path=str(state.file_path),
            errors=len(errors),
        )

        if errors:
            raise SpoolIOError(
                f"cannot close output file {state.file_name!r}",
                path=state.file_path,
                errors=errors,
            )

    def _append_index_record(self) -> None:
        state = self.state
        line = index_line(state.file_name, state.started_at, state.last_write_at)
        # Folder may have been removed underneath us
        state.index_path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
        # Opened per close so a crash never leaves the index handle dangling
        with open(state.index_path, "a", encoding="utf-8", newline="\n") as f:
            f.write(line)

    def _retire_folder(self) -> None:
        state = self.state
        if state.folder_path is None:
            return
        if not state.folder_path.is_dir():
            # Removed underneath us; nothing left to mark
            return

        path = state.folder_path / TIMESTAMP_FILE_NAME
        try:
            path.write_text(timestamp_marker_content(self._clock()), encoding="utf-8", newline="\n")
        except OSError as e:
            raise SpoolIOError(f"cannot write timestamp file {str(path)!r}", path=path) from e

        self._stats.folders_retired += 1
        emit_event(
            "spool_folder_retired",
            spool_version=SPOOL_VERSION,
            folder_path=str(state.folder_path),
        )

    def _purge(self, now: float) -> None:
        report = purge_expired_folders(
            self.config.base_folder_path,
            now=now,
            retain_hours=self.config.retain_hours,
        )
        self.last_purge = report

        for path in report.removed:
            emit_event("spool_folder_purged", spool_version=SPOOL_VERSION, folder_path=str(path))

        for path, e in report.errors:
            self._stats.purge_failures += 1
            emit_failure("spool_purge_failed", e, spool_version=SPOOL_VERSION, folder_path=str(path))
