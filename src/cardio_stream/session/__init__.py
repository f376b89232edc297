"""
Session Module
==============

Timed ECG recordings.
"""

from cardio_stream.session.recorder import (
    RecordingSession,
    RecordingState,
    estimate_stress,
    session_quality,
)

__all__ = [
    "RecordingSession",
    "RecordingState",
    "estimate_stress",
    "session_quality",
]
