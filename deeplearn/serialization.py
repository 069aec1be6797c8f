"""
DeepLearn Binary Fields
========================
Fixed-width field encoding shared by the network and learner save/load
code. Every field is little-endian with no padding or alignment markers,
so a saved learner is simply its fields laid end to end.

Field types:
    int32    — signed 32-bit integer ("<i")
    uint32   — unsigned 32-bit integer ("<I")
    float32  — IEEE-754 single precision ("<f")
    float32[] — a run of float32 values with no length prefix

Usage:
    >>> with open("learner.bin", "wb") as f:
    ...     n = write_int32(f, 3) + write_float32(f, 0.5)
    >>> with open("learner.bin", "rb") as f:
    ...     read_int32(f), read_float32(f)
    (3, 0.5)
"""

from __future__ import annotations

import io
import struct
from typing import BinaryIO, Optional

import numpy as np

from deeplearn.errors import CorruptStateError

# Stored in place of an error value that is not yet meaningful
UNKNOWN_ERROR = -9999.0

_INT32 = struct.Struct("<i")
_UINT32 = struct.Struct("<I")
_FLOAT32 = struct.Struct("<f")
_FLOAT32_DTYPE = np.dtype("<f4")


def to_float32(value: float) -> float:
    """Round a Python float to the nearest float32 and return it as a float."""
    return float(np.float32(value))


def float32_bits(value: Optional[float]) -> Optional[int]:
    """
    Bit pattern of a float32 value, used for bit-for-bit comparisons.

    None (an unknown error) has no bit pattern and is returned unchanged,
    so two unknowns compare equal and an unknown never equals a number.
    """
    if value is None:
        return None
    return int(np.array(value, dtype=np.float32).view(np.uint32))


def read_exact(stream: BinaryIO, n_bytes: int) -> bytes:
    """
    Read exactly n_bytes from the stream.

    Raises
    ------
    CorruptStateError
        If the stream ends before n_bytes were read.
    """
    data = stream.read(n_bytes)
    if data is None or len(data) != n_bytes:
        got = 0 if data is None else len(data)
        raise CorruptStateError(
            f"Unexpected end of stream: wanted {n_bytes} bytes, got {got}"
        )
    return data


def bytes_remaining(stream: BinaryIO) -> Optional[int]:
    """
    Number of bytes between the current position and the end of the
    stream, or None if the stream cannot seek.
    """
    if not stream.seekable():
        return None
    position = stream.tell()
    end = stream.seek(0, io.SEEK_END)
    stream.seek(position)
    return end - position


def write_int32(stream: BinaryIO, value: int) -> int:
    return stream.write(_INT32.pack(int(value)))


def read_int32(stream: BinaryIO) -> int:
    return _INT32.unpack(read_exact(stream, _INT32.size))[0]


def write_uint32(stream: BinaryIO, value: int) -> int:
    return stream.write(_UINT32.pack(int(value)))


def read_uint32(stream: BinaryIO) -> int:
    return _UINT32.unpack(read_exact(stream, _UINT32.size))[0]


def write_float32(stream: BinaryIO, value: float) -> int:
    return stream.write(_FLOAT32.pack(value))


def read_float32(stream: BinaryIO) -> float:
    return _FLOAT32.unpack(read_exact(stream, _FLOAT32.size))[0]


def write_error(stream: BinaryIO, value: Optional[float]) -> int:
    """Write an optional error value, encoding None as UNKNOWN_ERROR."""
    return write_float32(stream, UNKNOWN_ERROR if value is None else value)


def read_error(stream: BinaryIO) -> Optional[float]:
    """Read an error value written by write_error."""
    value = read_float32(stream)
    return None if value == UNKNOWN_ERROR else value


def write_float32_array(stream: BinaryIO, values: np.ndarray) -> int:
    return stream.write(np.ascontiguousarray(values, dtype=_FLOAT32_DTYPE).tobytes())


def read_float32_array(stream: BinaryIO, count: int) -> np.ndarray:
    """Read count float32 values into a new, writable native float32 array."""
    if count < 0:
        raise CorruptStateError(f"Negative array length in stream: {count}")
    data = read_exact(stream, count * _FLOAT32_DTYPE.itemsize)
    return np.frombuffer(data, dtype=_FLOAT32_DTYPE).astype(np.float32)
