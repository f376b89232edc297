"""
UI-Facing Events
================

Tagged union of events the core emits to the presentation layer.

Each event is a frozen dataclass carrying exactly the data it needs; the
``kind`` tag identifies it on the wire.

Wire Format:
    {"type": "heart_rate", "bpm": 72.1}
"""

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple, Union

from pydantic import BaseModel

from cardio_stream.models.health import HealthMetrics
from cardio_stream.models.link import ConnectionState
from cardio_stream.models.prediction import CardiacPrediction


@dataclass(frozen=True, slots=True)
class ConnectionStatusChanged:
    kind: ClassVar[str] = "connection_status"

    state: ConnectionState
    message: str
    device_name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class HeartRateUpdated:
    kind: ClassVar[str] = "heart_rate"

    bpm: float


@dataclass(frozen=True, slots=True)
class HealthMetricsUpdated:
    kind: ClassVar[str] = "health_metrics"

    metrics: HealthMetrics


@dataclass(frozen=True, slots=True)
class HealthAlert:
    """Raised when a scoring tick falls below the alert threshold."""

    kind: ClassVar[str] = "health_alert"

    metrics: HealthMetrics


@dataclass(frozen=True, slots=True)
class PredictionReady:
    kind: ClassVar[str] = "prediction"

    prediction: CardiacPrediction


@dataclass(frozen=True, slots=True)
class BufferSnapshot:
    """
    Ring buffer contents for charting.

    Empty samples are ``None`` so the snapshot stays JSON-safe.
    """

    kind: ClassVar[str] = "buffer_snapshot"

    channels: Tuple[Tuple[Optional[float], ...], ...]
    sweep_positions: Tuple[int, ...]


@dataclass(frozen=True, slots=True)
class RecordingStateChanged:
    kind: ClassVar[str] = "recording_state"

    state: str
    remaining_seconds: int = 0


@dataclass(frozen=True, slots=True)
class RecordingSaveFailed:
    kind: ClassVar[str] = "recording_save_failed"

    error: str


UIEvent = Union[
    ConnectionStatusChanged,
    HeartRateUpdated,
    HealthMetricsUpdated,
    HealthAlert,
    PredictionReady,
    BufferSnapshot,
    RecordingStateChanged,
    RecordingSaveFailed,
]


def to_payload(event: UIEvent) -> Dict[str, Any]:
    """Serialize an event to a JSON-compatible dict tagged with its kind."""
    payload: Dict[str, Any] = {"type": event.kind}
    for f in fields(event):
        value = getattr(event, f.name)
        if isinstance(value, BaseModel):
            value = value.model_dump(mode="json")
        elif isinstance(value, Enum):
            value = value.value
        elif isinstance(value, tuple):
            value = [list(v) if isinstance(v, tuple) else v for v in value]
        payload[f.name] = value
    return payload
