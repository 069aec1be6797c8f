"""
DeepLearn Error History
=========================
A constant-memory trace of the training error over an unbounded run.

How It Works:
    Every learner step offers one error value. Only every
    `sample_stride`-th value is kept. When the buffer fills up, every
    other sample is discarded (keeping the even indices), the buffer is
    half full again, and the stride doubles. The trace therefore always
    spans the whole run, at a resolution that halves each time the
    buffer fills.

    capacity=8, after 8 samples:   [e0 e1 e2 e3 e4 e5 e6 e7]  stride=1
    compacted:                     [e0 e2 e4 e6]              stride=2

    Sample i sits at step i * sample_stride; the x-coordinate is never
    stored.

Usage:
    >>> history = ErrorHistory(capacity=1024)
    >>> history.record(0.42)
    >>> history.series()
    [(0, 0.42...)]
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO, Optional

import numpy as np

from deeplearn.errors import CorruptStateError
from deeplearn.serialization import (
    read_float32_array,
    read_int32,
    write_float32_array,
    write_int32,
)

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_CAPACITY = 1024


class ErrorHistory:
    """
    Fixed-capacity error trace with in-place halving compaction.

    Parameters
    ----------
    capacity : int
        Maximum number of stored samples. Must be even and >= 2 so
        that a full buffer compacts to exactly half.
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY):
        if capacity < 2 or capacity % 2 != 0:
            raise ValueError(
                f"capacity must be an even number >= 2, got {capacity}"
            )
        self.capacity = capacity
        self.samples = np.zeros(capacity, dtype=np.float32)
        self.write_index = 0
        self.stride_counter = 0
        self.sample_stride = 1

    def record(self, value: float) -> None:
        """
        Offer one step's error value to the trace.

        The value is stored only when a full stride of steps has elapsed
        since the last stored sample; otherwise it is dropped.
        """
        self.stride_counter += 1
        if self.stride_counter < self.sample_stride:
            return

        self.samples[self.write_index] = value
        self.write_index += 1
        self.stride_counter = 0

        if self.write_index >= self.capacity:
            self._compact()

    def _compact(self) -> None:
        kept = self.samples[0:self.write_index:2].copy()
        self.samples[:len(kept)] = kept
        self.write_index = len(kept)
        self.sample_stride *= 2
        logger.debug(
            f"History compacted to {self.write_index} samples, "
            f"stride={self.sample_stride}"
        )

    @property
    def values(self) -> np.ndarray:
        """The stored samples, oldest first (read-only view)."""
        view = self.samples[:self.write_index]
        view.flags.writeable = False
        return view

    def series(self) -> list[tuple[int, float]]:
        """
        The trace as (step, error) points, step = index * sample_stride.
        """
        return [
            (i * self.sample_stride, float(v))
            for i, v in enumerate(self.samples[:self.write_index])
        ]

    def write_data(self, path: str | Path) -> None:
        """
        Write the trace as a two-column text file ("step    error"),
        one point per line, ready for an external plotting tool.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            for step, value in self.series():
                f.write(f"{step}    {value:.10f}\n")
        logger.info(f"History ({self.write_index} points) written to {path}")

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def save(self, stream: BinaryIO) -> int:
        """
        Write write_index, stride_counter, sample_stride (int32) and the
        stored samples (float32). Returns the number of bytes written.
        """
        n_bytes = write_int32(stream, self.write_index)
        n_bytes += write_int32(stream, self.stride_counter)
        n_bytes += write_int32(stream, self.sample_stride)
        n_bytes += write_float32_array(stream, self.samples[:self.write_index])
        return n_bytes

    @classmethod
    def load(
        cls,
        stream: BinaryIO,
        capacity: int = DEFAULT_HISTORY_CAPACITY,
    ) -> ErrorHistory:
        """
        Read a trace written by save() into a buffer of the given capacity.

        Raises
        ------
        CorruptStateError
            If the stream ends early or holds more samples than fit.
        """
        history = cls(capacity)
        write_index = read_int32(stream)
        stride_counter = read_int32(stream)
        sample_stride = read_int32(stream)
        if not 0 <= write_index <= capacity:
            raise CorruptStateError(
                f"History holds {write_index} samples but capacity is {capacity}"
            )
        history.samples[:write_index] = read_float32_array(stream, write_index)
        history.write_index = write_index
        history.stride_counter = stride_counter
        history.sample_stride = sample_stride
        return history

    def compare(self, other: ErrorHistory) -> Optional[str]:
        """
        Name of the first field that differs from `other`, or None.

        Fields are checked in the order write_index, stride_counter,
        sample_stride, samples; samples compare bit for bit.
        """
        for name in ("write_index", "stride_counter", "sample_stride"):
            if getattr(self, name) != getattr(other, name):
                return name
        n = self.write_index
        if not np.array_equal(
            self.samples[:n].view(np.uint32), other.samples[:n].view(np.uint32)
        ):
            return "samples"
        return None

    def __len__(self) -> int:
        return self.write_index

    def __repr__(self) -> str:
        return (
            f"ErrorHistory({self.write_index}/{self.capacity} samples, "
            f"stride={self.sample_stride})"
        )
