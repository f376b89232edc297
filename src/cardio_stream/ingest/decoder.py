"""
Frame Decoder
=============

Turns raw notification payloads into rows of float samples.

Text payloads:
    Lines are split on any run of CR/LF. The trailing partial line is held
    back and completed by the next frame. Each line is parsed as a single
    float, then as comma separated columns, then as whitespace separated
    columns. Columns that are not numbers are skipped; a line with no
    numeric column is dropped and counted.

Binary payloads:
    Any payload that is not printable ASCII is read as little-endian
    signed 16-bit samples scaled to the reference voltage:

        value = raw / 32767 * reference_voltage
"""

import logging
import re
from typing import List, Optional

import numpy as np

from cardio_stream.errors import DecodeError


logger = logging.getLogger(__name__)


_LINE_SPLIT = re.compile(r"[\r\n]+")
_INT16_FULL_SCALE = 32767.0


def parse_line(line: str) -> List[float]:
    """
    Parse one text line into column values.

    Args:
        line: Stripped, non-empty line

    Returns:
        One float per numeric column

    Raises:
        DecodeError: If no column is numeric
    """
    try:
        return [float(line)]
    except ValueError:
        pass

    if "," in line:
        parts = [p.strip() for p in line.split(",") if p.strip()]
    else:
        parts = line.split()

    values: List[float] = []
    for part in parts:
        try:
            values.append(float(part))
        except ValueError:
            logger.debug(f"Skipped column {part!r} in line {line!r}")

    if not values:
        raise DecodeError(f"No values in line {line!r}")
    return values


class FrameDecoder:
    """
    Stateful decoder that reassembles lines across frame boundaries.

    Attributes:
        reference_voltage: Full-scale voltage for binary payloads
        decode_errors: Number of lines dropped as unparseable

    Example:
        decoder = FrameDecoder()
        decoder.decode(b"0.51\\n0.4")   # [[0.51]]
        decoder.decode(b"8\\n")          # [[0.48]]
    """

    def __init__(self, reference_voltage: float = 3.3, max_pending_chars: int = 4096) -> None:
        self.reference_voltage = reference_voltage
        self.max_pending_chars = max_pending_chars
        self._pending: str = ""
        self.decode_errors: int = 0
        self.binary_frames: int = 0

    def decode(self, payload: bytes) -> List[List[float]]:
        """
        Decode one payload.

        Args:
            payload: Raw notification bytes

        Returns:
            Decoded rows, each holding one value per channel
        """
        if not payload:
            return []

        text = self._as_text(payload)
        if text is None:
            self.binary_frames += 1
            return self._decode_binary(payload)

        buffered = self._pending + text
        lines = _LINE_SPLIT.split(buffered)
        self._pending = lines.pop()

        if len(self._pending) > self.max_pending_chars:
            self.decode_errors += 1
            logger.warning(
                f"Discarding {len(self._pending)} buffered chars without a line break"
            )
            self._pending = ""

        rows: List[List[float]] = []
        for line in lines:
            line = line.strip()
            if not line:
                continue
            try:
                rows.append(parse_line(line))
            except DecodeError as e:
                self.decode_errors += 1
                logger.warning(f"Dropped line: {e}")
        return rows

    def reset(self) -> None:
        """Drop any partially received line."""
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def _as_text(self, payload: bytes) -> Optional[str]:
        try:
            text = payload.decode("ascii")
        except UnicodeDecodeError:
            return None
        if all(ch.isprintable() or ch in "\r\n\t" for ch in text):
            return text
        return None

    def _decode_binary(self, payload: bytes) -> List[List[float]]:
        usable = len(payload) - (len(payload) % 2)
        if usable == 0:
            self.decode_errors += 1
            return []
        raw = np.frombuffer(payload[:usable], dtype="<i2").astype(np.float64)
        scaled = raw / _INT16_FULL_SCALE * self.reference_voltage
        return [[float(v)] for v in scaled]
