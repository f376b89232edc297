"""
Health Metrics Models
=====================

Snapshot produced by the continuous health scorer on every tick.

Output Contract:
    {
        "cardiac_health": 92.4,
        "rhythm_stability": 88.0,
        "signal_quality": 90.0,
        "trend_score": 100.0,
        "personal_baseline": 100.0,
        "overall_score": 92.6,
        "health_status": "Excellent",
        "insights": ["Excellent cardiac health. ..."],
        "timestamp": "2026-01-05T08:30:00"
    }
"""

from datetime import datetime
from enum import Enum
from typing import Tuple

from pydantic import BaseModel, ConfigDict, Field


class HealthStatus(str, Enum):
    """Overall score band."""

    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"
    CRITICAL = "Critical"


class HealthMetrics(BaseModel):
    """
    Real-time cardiac health snapshot.

    All scores are in [0, 100]. ``overall_score`` is the weighted sum of
    the five component scores. Snapshots are shared by every event
    subscriber, so they are frozen.
    """

    model_config = ConfigDict(frozen=True)

    cardiac_health: float = Field(..., ge=0.0, le=100.0)
    rhythm_stability: float = Field(..., ge=0.0, le=100.0)
    signal_quality: float = Field(..., ge=0.0, le=100.0)
    trend_score: float = Field(..., ge=0.0, le=100.0)
    personal_baseline: float = Field(..., ge=0.0, le=100.0)
    overall_score: float = Field(..., ge=0.0, le=100.0)
    health_status: HealthStatus = Field(..., description="Score band")
    insights: Tuple[str, ...] = Field(default=(), description="Ordered insight lines")
    timestamp: datetime = Field(..., description="When the snapshot was computed")
