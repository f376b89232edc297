"""
Scoring Module
==============

Continuous multi-component cardiac health scoring.
"""

from cardio_stream.scoring.components import (
    ComponentScores,
    ScoreWeights,
    health_status,
    weighted_overall,
)
from cardio_stream.scoring.health_scorer import ContinuousHealthScorer

__all__ = [
    "ComponentScores",
    "ContinuousHealthScorer",
    "ScoreWeights",
    "health_status",
    "weighted_overall",
]
