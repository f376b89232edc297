"""
Models Module
=============

Pydantic models shared across the acquisition and analysis pipeline.
"""

from cardio_stream.models.beats import HeartBeatSeries
from cardio_stream.models.health import HealthMetrics, HealthStatus
from cardio_stream.models.link import ConnectionState, DeviceCandidate, LinkState
from cardio_stream.models.prediction import (
    Biomarkers,
    CardiacEventType,
    CardiacPrediction,
    RiskLevel,
)
from cardio_stream.models.profile import PersonalAnomalyReport, PersonalSignalProfile
from cardio_stream.models.session import ECGSession, UserProfile


__all__ = [
    "Biomarkers",
    "CardiacEventType",
    "CardiacPrediction",
    "ConnectionState",
    "DeviceCandidate",
    "ECGSession",
    "HealthMetrics",
    "HealthStatus",
    "HeartBeatSeries",
    "LinkState",
    "PersonalAnomalyReport",
    "PersonalSignalProfile",
    "RiskLevel",
    "UserProfile",
]
