"""
Health Score Components
=======================

The five component scores and how they combine.

Weights:
    overall = 0.40 * cardiac_health
            + 0.25 * rhythm_stability
            + 0.15 * signal_quality
            + 0.10 * trend_score
            + 0.10 * personal_baseline

Bands:
    Excellent >= 90, Good >= 80, Fair >= 70, Poor >= 60, else Critical
"""

from dataclasses import dataclass

from cardio_stream.models.health import HealthStatus


@dataclass(frozen=True, slots=True)
class ScoreWeights:
    """Component weights; they sum to 1.0."""

    cardiac_health: float = 0.40
    rhythm_stability: float = 0.25
    signal_quality: float = 0.15
    trend_score: float = 0.10
    personal_baseline: float = 0.10


@dataclass(frozen=True, slots=True)
class ComponentScores:
    """Component scores, each in [0, 100]."""

    cardiac_health: float
    rhythm_stability: float
    signal_quality: float
    trend_score: float
    personal_baseline: float


DEFAULT_WEIGHTS = ScoreWeights()


def clamp_score(value: float) -> float:
    return max(0.0, min(100.0, value))


def weighted_overall(scores: ComponentScores, weights: ScoreWeights = DEFAULT_WEIGHTS) -> float:
    """Weighted sum of the component scores, clamped to [0, 100]."""
    total = (
        scores.cardiac_health * weights.cardiac_health
        + scores.rhythm_stability * weights.rhythm_stability
        + scores.signal_quality * weights.signal_quality
        + scores.trend_score * weights.trend_score
        + scores.personal_baseline * weights.personal_baseline
    )
    # Guard against float error pushing an all-100 sum a hair past the bounds
    return clamp_score(round(total, 9))


def health_status(overall: float) -> HealthStatus:
    if overall >= 90:
        return HealthStatus.EXCELLENT
    if overall >= 80:
        return HealthStatus.GOOD
    if overall >= 70:
        return HealthStatus.FAIR
    if overall >= 60:
        return HealthStatus.POOR
    return HealthStatus.CRITICAL
