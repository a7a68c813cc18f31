"""Length-prefixed message framing for byte streams.

Each frame is a little-endian signed 32-bit byte count followed by the
UTF-8 bytes of the message, so consecutive messages on one stream can be
told apart.
"""

from __future__ import annotations

import struct
from typing import BinaryIO

_HEADER = struct.Struct("<i")
_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


def encode(msg: str) -> bytes:
    """Return ``msg`` as one frame: a 4-byte length header and the body."""
    body = msg.encode(_ENCODING, _ERRORS)
    if len(body) > 0x7FFFFFFF:
        raise ValueError("message too long for a 32-bit length header")
    return _HEADER.pack(len(body)) + body


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def decode(stream: BinaryIO) -> str:
    """Read one frame from ``stream`` and return its message.

    Raises EOFError when the stream ends before a frame starts or in the
    middle of one, and ValueError for a negative length header.
    """
    header = _read_exact(stream, _HEADER.size)
    if not header:
        raise EOFError("end of stream")
    if len(header) < _HEADER.size:
        raise EOFError("stream ended inside a frame header")
    (length,) = _HEADER.unpack(header)
    if length < 0:
        raise ValueError(f"invalid frame length: {length}")
    body = _read_exact(stream, length)
    if len(body) < length:
        raise EOFError("stream ended inside a frame body")
    return body.decode(_ENCODING, _ERRORS)