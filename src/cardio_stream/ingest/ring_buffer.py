"""
Channel Ring Buffer
===================

Fixed-capacity circular sample buffer for one ECG channel.

Design Rules:
    - Single writer (ingest), many readers (beat detector, scorer, UI)
    - Non-finite and exactly-zero values are stored as empty (NaN)
    - The sweep cursor always lies in [0, capacity); writing wraps
    - Readers only ever receive read-only views or copies
"""

import math

import numpy as np


def is_empty_sample(value: float) -> bool:
    """True for placeholder values that carry no data."""
    return not math.isfinite(value) or value == 0.0


class ChannelBuffer:
    """
    Circular buffer of samples with a sweep cursor.

    Attributes:
        capacity: Number of sample slots
        sweep_position: Index the next sample will be written to

    Example:
        buffer = ChannelBuffer(capacity=1000)
        buffer.write(0.42)
        recent = buffer.ordered()
    """

    def __init__(self, capacity: int = 1000) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self._capacity = capacity
        self._data = np.full(capacity, np.nan, dtype=np.float64)
        self._cursor: int = 0
        self._written: int = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def sweep_position(self) -> int:
        return self._cursor

    @property
    def total_written(self) -> int:
        """Samples ever written, including empty ones."""
        return self._written

    def write(self, value: float) -> None:
        """Store one sample at the cursor and advance it."""
        value = float(value)
        self._data[self._cursor] = np.nan if is_empty_sample(value) else value
        self._cursor = (self._cursor + 1) % self._capacity
        self._written += 1

    def extend(self, values) -> None:
        for value in values:
            self.write(value)

    def view(self) -> np.ndarray:
        """Read-only view of the raw slots in storage order."""
        view = self._data.view()
        view.flags.writeable = False
        return view

    def ordered(self) -> np.ndarray:
        """Copy of the written slots, oldest first."""
        if self._written < self._capacity:
            return self._data[: self._cursor].copy()
        return np.concatenate((self._data[self._cursor:], self._data[: self._cursor]))

    def valid(self) -> np.ndarray:
        """Real samples only, oldest first."""
        ordered = self.ordered()
        return ordered[~np.isnan(ordered)]

    def clear(self) -> None:
        self._data.fill(np.nan)
        self._cursor = 0
        self._written = 0
