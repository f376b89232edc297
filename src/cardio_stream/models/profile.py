"""
Personal Signal Profile
=======================

User-specific signal characteristics learned from historical sessions,
and the anomaly report produced by comparing a live window against them.

The profile is immutable; re-learning produces a new instance, which the
recorder only swaps in between recordings.
"""

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field


NOISE_BUCKETS = 10


class PersonalSignalProfile(BaseModel):
    """
    Learned personal baseline.

    Attributes:
        baseline_variability: Standard deviation of historical amplitudes
        avg_amplitude: Mean absolute historical amplitude
        personal_rr_interval_ms: Mean R-R interval in milliseconds
        noise_pattern: Noise level per 2.4 hour time-of-day bucket, in [0, 1]
        movement_tolerance: Local noise level above which samples are median filtered
        last_updated: Timestamp of the newest session learned from
    """

    model_config = ConfigDict(frozen=True)

    baseline_variability: float = Field(..., ge=0.0, description="Amplitude standard deviation")
    avg_amplitude: float = Field(..., description="Mean absolute amplitude")
    personal_rr_interval_ms: float = Field(..., gt=0.0, description="Mean R-R interval (ms)")
    noise_pattern: List[float] = Field(
        ...,
        min_length=NOISE_BUCKETS,
        max_length=NOISE_BUCKETS,
        description="Normalized noise by time-of-day bucket",
    )
    movement_tolerance: float = Field(..., gt=0.0, description="Noise tolerance")
    last_updated: datetime = Field(..., description="Newest session learned from")


class PersonalAnomalyReport(BaseModel):
    """
    Deviations of a live window from the personal profile.

    Deviations are signed and relative to the profile value. When fewer
    than two beats are found, ``available`` is False and every field
    keeps its neutral default.
    """

    available: bool = Field(default=False, description="Enough beats to compare")
    amplitude_deviation: float = Field(default=0.0)
    rr_deviation: float = Field(default=0.0)
    variability_change: float = Field(default=0.0)
    irregular_rhythm: bool = Field(default=False)
    amplitude_anomaly: bool = Field(default=False)
    rhythm_anomaly: bool = Field(default=False)
    personal_risk_score: float = Field(default=0.0, ge=0.0, le=100.0)
