"""
spool.naming
AUTHOR: carter-vin

Folder and file naming for the spool layout

Layout:
- <base>/<folder_name(hour)>/<file_name(serial)>   segment file
- <base>/<folder_name(hour)>/_index                 append-only index
- <base>/<folder_name(hour)>/_t                     retirement marker

Encoding:
- big-endian bytes, base-32 with alphabet 0-9a-v, no padding
- folder: low 3 bytes of the masked hour (5 chars)
- file: 2 bytes when serial <= 0xFFFF (4 chars), else 4 bytes (7 chars)

Caveat:
- the width change at 0xFFFF means lexical order of file names does not
  follow serial order across that boundary; use decode_file_name to sort
"""

from __future__ import annotations

import base64
import binascii

HOUR_MASK = 0xFFFFFF
SHORT_SERIAL_MAX = 0xFFFF

INDEX_FILE_NAME = "_index"
TIMESTAMP_FILE_NAME = "_t"

_STD_ALPHABET = b"ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
_SPOOL_ALPHABET = b"0123456789abcdefghijklmnopqrstuv"

_TO_SPOOL = bytes.maketrans(_STD_ALPHABET, _SPOOL_ALPHABET)
_FROM_SPOOL = bytes.maketrans(_SPOOL_ALPHABET, _STD_ALPHABET)


def b32encode(raw: bytes) -> str:
    """
    Encode bytes with the spool base-32 alphabet, padding stripped
    """
    encoded = base64.b32encode(raw).rstrip(b"=")
    return encoded.translate(_TO_SPOOL).decode("ascii")


def b32decode(text: str) -> bytes | None:
    """
    Inverse of b32encode; None when text is not a valid encoding
    """
    try:
        raw = text.encode("ascii")
    except UnicodeEncodeError:
        return None
    if not raw or any(ch not in _SPOOL_ALPHABET for ch in raw):
        return None
    padded = raw.translate(_FROM_SPOOL) + b"=" * (-len(raw) % 8)
    try:
        return base64.b32decode(padded)
    except binascii.Error:
        return None


def hour_bucket(unix_seconds: float) -> int:
    """
    Masked hour bucket for a UNIX timestamp
    """
    return (int(unix_seconds) // 3600) & HOUR_MASK


def folder_name(hour: int) -> str:
    masked = hour & HOUR_MASK
    # 4 bytes big-endian with the (always zero) high byte dropped
    return b32encode(masked.to_bytes(4, "big")[1:])


def file_name(serial: int) -> str:
    if serial > SHORT_SERIAL_MAX:
        return b32encode(serial.to_bytes(4, "big"))
    return b32encode(serial.to_bytes(2, "big"))


def decode_folder_name(name: str) -> int | None:
    """
    Return the masked hour encoded in a folder name, or None
    """
    if len(name) != 5:
        return None
    raw = b32decode(name)
    if raw is None or len(raw) != 3:
        return None
    return int.from_bytes(raw, "big")


def decode_file_name(name: str) -> int | None:
    """
    Return the serial encoded in a segment file name, or None

    Only the two widths the writer produces are accepted (4 and 7 chars).
    """
    if len(name) not in (4, 7):
        return None
    raw = b32decode(name)
    if raw is None or len(raw) not in (2, 4):
        return None
    return int.from_bytes(raw, "big")
