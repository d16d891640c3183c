"""
spool.errors
AUTHOR: carter-vin

Error taxonomy shared by the spool writer and the replay reader

Writer side:
- ConfigError: invalid construction (fatal)
- SpoolIOError: mkdir/open/write/close failures (caller may retry)

Reader side:
- CorruptFrameError / TruncatedFrameError: framing violations
- DeserializeError: payload is not a valid span record
- UploadError: uploader rejected a batch
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence


class SpoolError(Exception):
    """Base class for all spool errors."""


class ConfigError(SpoolError):
    pass


class SpoolIOError(SpoolError):
    """
    Filesystem failure while writing the spool

    errors:
    - underlying failures when several were collected (close + index, shutdown)
    """

    def __init__(
        self,
        message: str,
        *,
        path: Path | str | None = None,
        errors: Sequence[BaseException] = (),
    ) -> None:
        self.path = str(path) if path is not None else None
        self.errors = list(errors)
        if self.errors:
            joined = "; ".join(str(e) for e in self.errors)
            message = f"{message}: {joined}"
        super().__init__(message)


class FrameError(SpoolError):
    """Base class for framing violations found while decoding."""


class CorruptFrameError(FrameError):
    pass


class TruncatedFrameError(FrameError):
    pass


class DeserializeError(SpoolError):
    pass


class UploadError(SpoolError):
    """
    Uploader failure for one batch

    The original exception is chained as __cause__.
    """

    def __init__(self, message: str, *, path: Path | str, record_count: int) -> None:
        self.path = str(path)
        self.record_count = record_count
        super().__init__(message)
