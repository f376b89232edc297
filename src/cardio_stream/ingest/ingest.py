"""
Sample Ingest
=============

Decodes raw frames, rate-limits processing, and fills per-channel ring
buffers.

This module:
    - Decodes EVERY frame so partial lines are always reassembled
    - Accepts a decoded batch only if at least ``min_batch_interval_ms``
      passed since the previously accepted batch; other batches are dropped
    - Infers the channel count from the first decoded row
    - Notifies listeners with the first-channel values of each accepted batch

Design Rules:
    - Ingest is the only writer of the channel buffers
    - Decode errors are counted and logged, never raised
"""

import logging
import math
from typing import Callable, List, Optional, Tuple

from cardio_stream.events.types import BufferSnapshot
from cardio_stream.ingest.decoder import FrameDecoder
from cardio_stream.ingest.frame import RawFrame
from cardio_stream.ingest.ring_buffer import ChannelBuffer


logger = logging.getLogger(__name__)


SampleListener = Callable[[List[float]], None]


class IngestMetrics:
    """Metrics for SampleIngest observability."""

    __slots__ = (
        "frames_received",
        "batches_accepted",
        "batches_dropped",
        "samples_written",
        "last_accepted_at",
    )

    def __init__(self) -> None:
        self.frames_received: int = 0
        self.batches_accepted: int = 0
        self.batches_dropped: int = 0
        self.samples_written: int = 0
        self.last_accepted_at: Optional[float] = None

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_received": self.frames_received,
            "batches_accepted": self.batches_accepted,
            "batches_dropped": self.batches_dropped,
            "samples_written": self.samples_written,
            "last_accepted_at": self.last_accepted_at,
        }


class SampleIngest:
    """
    Frame sink that feeds the channel buffers.

    Example:
        ingest = SampleIngest(capacity=1000, min_batch_interval_ms=50)
        ingest.add_listener(beat_detector.extend)
        ingest.on_frame(RawFrame(payload=b"0.51\\n", received_at=12.0))
    """

    def __init__(
        self,
        decoder: Optional[FrameDecoder] = None,
        capacity: int = 1000,
        min_batch_interval_ms: float = 50.0,
        log_every_n_frames: int = 500,
    ) -> None:
        """
        Initialize ingest.

        Args:
            decoder: Frame decoder (a fresh one if None)
            capacity: Samples per channel buffer
            min_batch_interval_ms: Minimum spacing of accepted batches
            log_every_n_frames: Log ingest stats every N frames
        """
        self._decoder = decoder or FrameDecoder()
        self._capacity = capacity
        self.min_batch_interval_ms = min_batch_interval_ms
        self.log_every_n_frames = log_every_n_frames

        self._channels: List[ChannelBuffer] = []
        self._listeners: List[SampleListener] = []
        self.metrics = IngestMetrics()

    @property
    def channels(self) -> Tuple[ChannelBuffer, ...]:
        return tuple(self._channels)

    @property
    def channel_count(self) -> int:
        return len(self._channels)

    @property
    def decode_errors(self) -> int:
        return self._decoder.decode_errors

    def add_listener(self, listener: SampleListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SampleListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def on_frame(self, frame: RawFrame) -> bool:
        """
        Process one raw frame.

        Args:
            frame: Frame from the device link

        Returns:
            True if a batch was accepted and written
        """
        self.metrics.frames_received += 1
        rows = self._decoder.decode(frame.payload)

        if self.metrics.frames_received % self.log_every_n_frames == 0:
            logger.info(
                f"Ingest [frame {self.metrics.frames_received}]: "
                f"accepted={self.metrics.batches_accepted}, "
                f"dropped={self.metrics.batches_dropped}, "
                f"decode_errors={self._decoder.decode_errors}"
            )

        if not rows:
            return False

        last = self.metrics.last_accepted_at
        if last is not None and (frame.received_at - last) * 1000.0 < self.min_batch_interval_ms:
            self.metrics.batches_dropped += 1
            return False

        self.metrics.last_accepted_at = frame.received_at
        self.metrics.batches_accepted += 1

        if not self._channels:
            self._channels = [ChannelBuffer(self._capacity) for _ in rows[0]]
            logger.info(f"Channel count inferred: {len(self._channels)}")

        primary: List[float] = []
        for row in rows:
            for index, buffer in enumerate(self._channels):
                buffer.write(row[index] if index < len(row) else float("nan"))
            primary.append(row[0])
        self.metrics.samples_written += len(rows)

        for listener in self._listeners:
            listener(primary)
        return True

    def snapshot(self) -> BufferSnapshot:
        """JSON-safe copy of every channel in storage order."""
        channels = tuple(
            tuple(None if math.isnan(v) else float(v) for v in buffer.view())
            for buffer in self._channels
        )
        positions = tuple(buffer.sweep_position for buffer in self._channels)
        return BufferSnapshot(channels=channels, sweep_positions=positions)

    def reset(self) -> None:
        """Forget channels, partial lines and rate-limit state."""
        self._channels = []
        self._decoder.reset()
        self.metrics.last_accepted_at = None
        logger.info("SampleIngest reset")
