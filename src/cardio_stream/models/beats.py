"""
Heart Beat Series
=================

Read-only snapshot of the beat detector's bounded history.
"""

from typing import List

from pydantic import BaseModel, Field


class HeartBeatSeries(BaseModel):
    """
    Recent beats and smoothed heart-rate estimates.

    Attributes:
        beat_timestamps_ms: Last beat timestamps (oldest first, at most 10)
        rate_history: Last heart-rate estimates in BPM (at most 5)
        heart_rate: Mean of rate_history, 0.0 with fewer than 2 beats
    """

    beat_timestamps_ms: List[float] = Field(default_factory=list)
    rate_history: List[float] = Field(default_factory=list)
    heart_rate: float = Field(default=0.0, ge=0.0)
