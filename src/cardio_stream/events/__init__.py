"""
Events Module
=============

UI-facing event types and the bus that delivers them.

Example:
    from cardio_stream.events import EventBus, HeartRateUpdated

    bus = EventBus()
    subscription = bus.subscribe()
    bus.publish(HeartRateUpdated(bpm=72.0))
"""

from cardio_stream.events.bus import EventBus, EventSubscription
from cardio_stream.events.types import (
    BufferSnapshot,
    ConnectionStatusChanged,
    HealthAlert,
    HealthMetricsUpdated,
    HeartRateUpdated,
    PredictionReady,
    RecordingSaveFailed,
    RecordingStateChanged,
    UIEvent,
    to_payload,
)


__all__ = [
    "BufferSnapshot",
    "ConnectionStatusChanged",
    "EventBus",
    "EventSubscription",
    "HealthAlert",
    "HealthMetricsUpdated",
    "HeartRateUpdated",
    "PredictionReady",
    "RecordingSaveFailed",
    "RecordingStateChanged",
    "UIEvent",
    "to_payload",
]
