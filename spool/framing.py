"""
spool.framing
AUTHOR: carter-vin

Binary framing for span record batches

Batch layout (all integers little-endian):
- count: uint32
- count times: size (uint32) + payload (size bytes)

Decoding rules:
- EOF exactly at a count field -> clean end of stream
- EOF anywhere else -> TruncatedFrameError
- size read as signed 32-bit; negative -> CorruptFrameError
- size == 0 -> padding, skipped; does not count toward `count`
"""

from __future__ import annotations

import io
import struct
from typing import BinaryIO, Iterator, Sequence

from spool.errors import CorruptFrameError, TruncatedFrameError

_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")


def encoded_size(records: Sequence[bytes]) -> int:
    if not records:
        return 0
    return _U32.size + sum(_U32.size + len(r) for r in records)


def encode_batch(records: Sequence[bytes]) -> bytes:
    """
    Frame one batch of already-serialized span records

    An empty batch encodes to b"" and must not be written.
    """
    if not records:
        return b""

    parts = [_U32.pack(len(records))]
    for record in records:
        parts.append(_U32.pack(len(record)))
        parts.append(bytes(record))
    return b"".join(parts)


def _read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    chunks: list[bytes] = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            raise TruncatedFrameError(
                f"unexpected end of input reading {what}: wanted {size} bytes, got {size - remaining}"
            )
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_batch(stream: BinaryIO) -> list[bytes] | None:
    """
    Decode one batch from a binary stream

    Returns:
    - list of record payloads (may be empty when count == 0)
    - None on clean end of stream
    """
    head = stream.read(_U32.size)
    if not head:
        return None
    if len(head) < _U32.size:
        # Partial count field; let _read_exact finish or fail it
        head += _read_exact(stream, _U32.size - len(head), "batch count")

    (remaining,) = _U32.unpack(head)
    records: list[bytes] = []
    while remaining > 0:
        (size,) = _I32.unpack(_read_exact(stream, _I32.size, "record size"))
        if size < 0:
            raise CorruptFrameError(f"invalid record size {size}")
        if size == 0:
            continue
        records.append(_read_exact(stream, size, "record payload"))
        remaining -= 1
    return records


def iter_batches(stream: BinaryIO) -> Iterator[list[bytes]]:
    """
    Yield batches until clean end of stream
    """
    while True:
        batch = read_batch(stream)
        if batch is None:
            return
        yield batch


def decode_batches(data: bytes) -> list[list[bytes]]:
    return list(iter_batches(io.BytesIO(data)))
