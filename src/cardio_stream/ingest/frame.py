"""
Raw Frame
=========

Notification payload as delivered by the sensor transport.

Design Rules:
    - Payload bytes are passed through unchanged
    - A frame may hold part of a text line, several lines, or raw int16 samples
"""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RawFrame:
    """
    One notification from the sensor.

    Attributes:
        payload: Opaque bytes from the data channel
        received_at: Monotonic loop time of arrival (seconds)
    """

    payload: bytes
    received_at: float

    def __repr__(self) -> str:
        return f"RawFrame(bytes={len(self.payload)}, received_at={self.received_at:.3f})"
