"""
Continuous Health Scorer
========================

Combines beat, rhythm, signal, trend and baseline analyses into one
real-time HealthMetrics snapshot.

Component Rules:
    cardiac_health:
        start 100; heart rate outside [60 + 0.1*age - 10, 60 + 0.1*age + 20] -> -15;
        averaged with the HRV score  min(100, RMSSD / (50 - 0.5*age) * 100);
        averaged with the QRS score  100, -10 per beat wider than 15 samples;
        averaged with the ST score   100, -15 per beat whose level 30 samples
                                     after R deviates > 20% of R height
    rhythm_stability:
        100 - 1000 * CV(R-R), averaged with the arrhythmia score
    signal_quality:
        100; SNR < 10 dB -> -30, < 20 dB -> -15; averaged with baseline
        stability, then with the artifact score
    trend_score:
        last-7-day vs last-30-day heart rate and abnormal session share
    personal_baseline:
        amplitude and variability deviation from the personal profile

Conservative Defaults:
    empty window -> cardiac 50, rhythm 50, signal 0, baseline 50
    fewer than 3 beats -> rhythm 75; fewer than 3 sessions -> trend 75
"""

import logging
import math
from datetime import datetime
from typing import List, Optional, Sequence

import numpy as np

from cardio_stream.models.health import HealthMetrics
from cardio_stream.models.profile import PersonalSignalProfile
from cardio_stream.models.session import ECGSession, UserProfile
from cardio_stream.scoring.components import (
    DEFAULT_WEIGHTS,
    ComponentScores,
    ScoreWeights,
    clamp_score,
    health_status,
    weighted_overall,
)
from cardio_stream.scoring.insights import generate_insights
from cardio_stream.signals.metrics import (
    ArrayLike,
    clean,
    detect_r_peaks,
    mean_abs,
    population_std,
    rr_intervals_ms,
)


logger = logging.getLogger(__name__)


QRS_MAX_WIDTH_SAMPLES = 15
ST_OFFSET_SAMPLES = 30
ST_MARGIN_SAMPLES = 40
BASELINE_WINDOW = 100
MIN_EXPECTED_RMSSD = 10.0


class ContinuousHealthScorer:
    """
    Real-time cardiac health scorer.

    Stateless apart from configuration; one call per scoring tick.

    Example:
        scorer = ContinuousHealthScorer(sample_interval_ms=8.0)
        metrics = scorer.calculate_real_time_score(window, profile, history, user)
        print(metrics.overall_score, metrics.health_status)
    """

    def __init__(
        self,
        sample_interval_ms: float = 8.0,
        threshold_factor: float = 0.6,
        refractory_samples: int = 40,
        weights: ScoreWeights = DEFAULT_WEIGHTS,
        log_every_n_ticks: int = 20,
    ) -> None:
        self.sample_interval_ms = sample_interval_ms
        self.threshold_factor = threshold_factor
        self.refractory_samples = refractory_samples
        self.weights = weights
        self.log_every_n_ticks = log_every_n_ticks
        self._tick_count: int = 0

    def calculate_real_time_score(
        self,
        window: ArrayLike,
        profile: PersonalSignalProfile,
        history: Sequence[ECGSession],
        user: UserProfile,
        current_time: Optional[datetime] = None,
        stress_level: float = 0.0,
        activity_level: float = 0.0,
    ) -> HealthMetrics:
        """
        Score the current window.

        Args:
            window: Current sample window (empty samples are ignored)
            profile: Personal signal profile
            history: Recent historical sessions
            user: Wearer profile
            current_time: Time of the reading (defaults to now)
            stress_level: Estimated stress in [0, 1]
            activity_level: Estimated activity in [0, 1]

        Returns:
            HealthMetrics snapshot
        """
        current_time = current_time or datetime.now()
        x = clean(window)
        peaks = detect_r_peaks(x, self.threshold_factor, self.refractory_samples)

        scores = ComponentScores(
            cardiac_health=self.cardiac_health(x, peaks, user.effective_age),
            rhythm_stability=self.rhythm_stability(x, peaks),
            signal_quality=signal_quality(x),
            trend_score=trend_score(history, current_time),
            personal_baseline=personal_baseline(x, profile),
        )
        overall = weighted_overall(scores, self.weights)

        self._tick_count += 1
        if self._tick_count % self.log_every_n_ticks == 0:
            logger.info(
                f"HealthScore [tick {self._tick_count}]: overall={overall:.1f}, "
                f"cardiac={scores.cardiac_health:.1f}, rhythm={scores.rhythm_stability:.1f}, "
                f"signal={scores.signal_quality:.1f}"
            )

        return HealthMetrics(
            cardiac_health=scores.cardiac_health,
            rhythm_stability=scores.rhythm_stability,
            signal_quality=scores.signal_quality,
            trend_score=scores.trend_score,
            personal_baseline=scores.personal_baseline,
            overall_score=overall,
            health_status=health_status(overall),
            insights=generate_insights(
                scores, overall, current_time, stress_level, activity_level
            ),
            timestamp=current_time,
        )

    def generate_health_timeline(
        self,
        sessions: Sequence[ECGSession],
        profile: PersonalSignalProfile,
        user: UserProfile,
    ) -> List[HealthMetrics]:
        """
        Score every historical session against the sessions before it.

        Returns:
            One snapshot per non-empty session, oldest first
        """
        ordered = sorted(sessions, key=lambda s: s.timestamp)
        timeline: List[HealthMetrics] = []
        for index, session in enumerate(ordered):
            if not session.samples:
                continue
            earlier = ordered[:index]
            timeline.append(
                self.calculate_real_time_score(
                    session.samples,
                    profile,
                    earlier,
                    user,
                    current_time=session.timestamp,
                )
            )
        return timeline

    # -------------------------------------------------------------------------
    # Beat-based components
    # -------------------------------------------------------------------------

    def cardiac_health(self, x: np.ndarray, peaks: np.ndarray, age: int) -> float:
        if x.size == 0:
            return 50.0

        score = 100.0
        if len(peaks) > 1:
            mean_spacing = (peaks[-1] - peaks[0]) / (len(peaks) - 1)
            heart_rate = 60000.0 / (mean_spacing * self.sample_interval_ms)
            target = 60.0 + 0.1 * age
            if heart_rate < target - 10 or heart_rate > target + 20:
                score -= 15

            intervals = rr_intervals_ms(peaks, self.sample_interval_ms)
            score = (score + hrv_score(intervals, age)) / 2

        score = (score + qrs_score(x, peaks)) / 2
        score = (score + st_score(x, peaks)) / 2
        return clamp_score(score)

    def rhythm_stability(self, x: np.ndarray, peaks: np.ndarray) -> float:
        if x.size == 0:
            return 50.0
        if len(peaks) < 3:
            return 75.0

        intervals = rr_intervals_ms(peaks, self.sample_interval_ms)
        mean = float(np.mean(intervals))
        cv = float(np.std(intervals)) / mean if mean > 0 else 0.0
        score = 100.0 - cv * 1000.0
        score = (score + arrhythmia_score(intervals)) / 2
        return clamp_score(score)


# =============================================================================
# Component helpers
# =============================================================================

def hrv_score(intervals: np.ndarray, age: int) -> float:
    """RMSSD against an age-adjusted expectation (75 with < 2 intervals)."""
    if len(intervals) < 2:
        return 75.0
    rmssd = math.sqrt(float(np.mean(np.diff(intervals) ** 2)))
    expected = max(MIN_EXPECTED_RMSSD, 50.0 - 0.5 * age)
    return clamp_score(rmssd / expected * 100.0)


def qrs_width(x: np.ndarray, peak: int) -> int:
    """Samples between the half-height crossings around a peak."""
    half = x[peak] * 0.5
    start = peak
    while start > 0 and x[start] > half:
        start -= 1
    end = peak
    while end < x.size - 1 and x[end] > half:
        end += 1
    return end - start


def qrs_score(x: np.ndarray, peaks: np.ndarray) -> float:
    if len(peaks) == 0:
        return 50.0
    score = 100.0
    for peak in peaks:
        if QRS_MAX_WIDTH_SAMPLES <= peak < x.size - QRS_MAX_WIDTH_SAMPLES:
            if qrs_width(x, int(peak)) > QRS_MAX_WIDTH_SAMPLES:
                score -= 10
    return max(0.0, score)


def st_score(x: np.ndarray, peaks: np.ndarray) -> float:
    """
    ST deviation measured against the window median as isoelectric level.

    deviation = (x[p + 30] - median) / (x[p] - median), flagged above 0.2
    """
    score = 100.0
    if len(peaks) == 0:
        return score
    isoelectric = float(np.median(x))
    for peak in peaks:
        if peak < x.size - ST_MARGIN_SAMPLES:
            r_height = x[peak] - isoelectric
            if r_height <= 0:
                continue
            deviation = (x[peak + ST_OFFSET_SAMPLES] - isoelectric) / r_height
            if abs(deviation) > 0.2:
                score -= 15
    return max(0.0, score)


def arrhythmia_score(intervals: np.ndarray) -> float:
    """Penalty for successive R-R jumps above 20% of the mean."""
    if len(intervals) < 3:
        return 100.0
    mean = float(np.mean(intervals))
    irregular = int(np.sum(np.abs(np.diff(intervals)) > mean * 0.2))
    ratio = irregular / len(intervals)
    score = 100.0
    if ratio > 0.3:
        score -= 30
    elif ratio > 0.15:
        score -= 15
    return score


def snr_db(x: np.ndarray) -> float:
    if x.size == 0:
        return 0.0
    signal_power = float(np.mean(x ** 2))
    if x.size < 2:
        return 50.0
    noise_power = float(np.mean(np.diff(x) ** 2))
    if noise_power <= 0 or signal_power <= 0:
        return 50.0
    return 10.0 * math.log10(signal_power / noise_power)


def baseline_stability(x: np.ndarray, window: int = BASELINE_WINDOW) -> float:
    means = [float(np.mean(x[i: i + window])) for i in range(0, x.size - window, window)]
    if len(means) < 2:
        return 100.0
    max_drift = max(abs(b - a) for a, b in zip(means, means[1:]))
    return max(0.0, 100.0 - max_drift * 100.0)


def artifact_score(x: np.ndarray) -> float:
    if x.size == 0:
        return 100.0
    jumps = np.abs(np.diff(x))
    count = int(np.sum(jumps > mean_abs(x) * 2.0))
    return max(0.0, 100.0 - count / x.size * 200.0)


def signal_quality(x: np.ndarray) -> float:
    if x.size == 0:
        return 0.0
    score = 100.0
    snr = snr_db(x)
    if snr < 10:
        score -= 30
    elif snr < 20:
        score -= 15
    score = (score + baseline_stability(x)) / 2
    score = (score + artifact_score(x)) / 2
    return clamp_score(score)


# =============================================================================
# History-based components
# =============================================================================

def trend_score(history: Sequence[ECGSession], current_time: datetime) -> float:
    """Heart-rate drift and abnormal share over the last week vs month."""
    if len(history) < 3:
        return 75.0

    last7 = [s for s in history if (current_time - s.timestamp).days <= 7]
    last30 = [s for s in history if (current_time - s.timestamp).days <= 30]

    score = 100.0
    if len(last7) >= 3:
        recent = sum(s.avg_bpm for s in last7) / len(last7)
        historical = sum(s.avg_bpm for s in last30) / len(last30)
        if historical > 0 and abs(recent - historical) / historical > 0.15:
            score -= 20

    abnormal = sum(1 for s in last7 if not s.is_normal)
    if abnormal > len(last7) * 0.3:
        score -= 25
    return clamp_score(score)


def personal_baseline(x: np.ndarray, profile: PersonalSignalProfile) -> float:
    """Amplitude and variability deviation from the learned profile."""
    if x.size == 0:
        return 50.0

    score = 100.0
    if profile.avg_amplitude != 0:
        amplitude_dev = abs(mean_abs(x) - profile.avg_amplitude) / abs(profile.avg_amplitude)
        if amplitude_dev > 0.3:
            score -= 25
        elif amplitude_dev > 0.15:
            score -= 10

    if profile.baseline_variability > 0:
        variability_dev = (
            abs(population_std(x) - profile.baseline_variability) / profile.baseline_variability
        )
        if variability_dev > 0.5:
            score -= 20
        elif variability_dev > 0.25:
            score -= 10
    return clamp_score(score)
