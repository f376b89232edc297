"""
CardioStream
============

Streaming ECG acquisition, personal health scoring and cardiac risk prediction.

This package connects to a single-lead ECG sensor over BLE, decodes its
notification frames into a ring buffer, records timed sessions, scores
signal windows against a personal baseline and predicts near-term cardiac
risk from the wearer's session history.

Components:
    - link: Connection state machine, reconnect policy and BLE transport
    - ingest: Frame decoding, ring buffer and snapshots
    - signals: Beat detection and adaptive personal profile
    - scoring: Real-time HealthMetrics
    - prediction: Cardiac risk components and recommendations
    - analysis: LangGraph end-of-recording workflow
    - session: Countdown/record/process lifecycle
    - stores: Session and user profile persistence
    - events: UI event types and fan-out bus

Example:
    from cardio_stream.config import settings
    from cardio_stream.runtime import CardioRuntime

    # Runtime is started via the FastAPI application
    # See main.py for entry point
"""

__version__ = "0.1.0"
__author__ = "CardioStream Project"

__all__ = [
    "__version__",
]
