"""
Adaptive Signal Processor
=========================

Learns a personal signal profile from historical sessions, conditions
live sample windows against it, and flags deviations from it.

Profile Learning:
    - Up to ``learning_window`` most recent sessions
    - avg_amplitude: mean |x| over all real samples
    - baseline_variability: standard deviation over all real samples
    - personal_rr_interval_ms: mean R-R interval over per-session peaks
    - noise_pattern: per-session noise summed into 10 time-of-day buckets
      (bucket = int(hour / 2.4)) on top of a 0.1 floor, normalized by the max
    - movement_tolerance: max(0.1, 1.5 * p75 of per-session noise)

    With no history the profile is derived from age:
        personal_rr_interval_ms = 60000 / (220 - age)

Filter Pipeline (fixed order):
    1. Baseline correction   x - mean(x[i-25:i+25]) + avg_amplitude
    2. Noise reduction       median of the +-5 window when its mean |dx|
                             exceeds movement_tolerance (interior samples)
    3. Movement compensation divide by min(level / tolerance, 2) when > 1
    4. Environment           3-point moving average when noise > 0.5
    5. Normalization         min-max range -> 2 * avg_amplitude, centred at 0
"""

import logging
import math
from datetime import datetime
from typing import List, Optional, Sequence

import numpy as np

from cardio_stream.errors import ProfileLockedError
from cardio_stream.models.profile import (
    NOISE_BUCKETS,
    PersonalAnomalyReport,
    PersonalSignalProfile,
)
from cardio_stream.models.session import ECGSession, UserProfile
from cardio_stream.signals.metrics import (
    ArrayLike,
    clean,
    detect_r_peaks,
    mean_abs,
    mean_abs_diff,
    population_std,
    rr_intervals_ms,
)


logger = logging.getLogger(__name__)


DEFAULT_RR_INTERVAL_MS = 800.0
DEFAULT_MOVEMENT_TOLERANCE = 0.2
NOISE_FLOOR = 0.1


class AdaptiveSignalProcessor:
    """
    Personal-baseline signal conditioning.

    Holds the current profile. The profile may only be replaced while the
    processor is unlocked; the recorder locks it for the duration of a
    recording.

    Example:
        processor = AdaptiveSignalProcessor(sample_interval_ms=8.0)
        profile = processor.learn_personal_profile(sessions, user)
        filtered = processor.adaptive_filter(window, profile)
    """

    def __init__(
        self,
        sample_interval_ms: float = 8.0,
        learning_window: int = 100,
        threshold_factor: float = 0.6,
        refractory_samples: int = 40,
    ) -> None:
        """
        Initialize the processor.

        Args:
            sample_interval_ms: Milliseconds per sample
            learning_window: Most recent sessions used for learning
            threshold_factor: R-peak threshold factor
            refractory_samples: R-peak refractory period in samples
        """
        self.sample_interval_ms = sample_interval_ms
        self.learning_window = learning_window
        self.threshold_factor = threshold_factor
        self.refractory_samples = refractory_samples

        self._profile: Optional[PersonalSignalProfile] = None
        self._locked: bool = False

    # -------------------------------------------------------------------------
    # Profile ownership
    # -------------------------------------------------------------------------

    @property
    def profile(self) -> Optional[PersonalSignalProfile]:
        return self._profile

    @property
    def locked(self) -> bool:
        return self._locked

    def lock(self) -> None:
        self._locked = True

    def unlock(self) -> None:
        self._locked = False

    def relearn(
        self,
        sessions: Sequence[ECGSession],
        user: UserProfile,
    ) -> PersonalSignalProfile:
        """
        Learn a profile and make it the current one.

        Raises:
            ProfileLockedError: If a recording is in progress
        """
        if self._locked:
            raise ProfileLockedError("Personal profile is locked during a recording")
        self._profile = self.learn_personal_profile(sessions, user)
        logger.info(
            f"Personal profile learned from {min(len(sessions), self.learning_window)} sessions: "
            f"amplitude={self._profile.avg_amplitude:.4f}, "
            f"rr={self._profile.personal_rr_interval_ms:.1f}ms, "
            f"tolerance={self._profile.movement_tolerance:.4f}"
        )
        return self._profile

    # -------------------------------------------------------------------------
    # Learning
    # -------------------------------------------------------------------------

    def learn_personal_profile(
        self,
        sessions: Sequence[ECGSession],
        user: UserProfile,
    ) -> PersonalSignalProfile:
        """
        Learn the wearer's signal profile.

        Pure: the same session list always yields an equal profile.

        Args:
            sessions: Historical sessions in any order
            user: Wearer profile (age is used for defaults)

        Returns:
            Learned profile, or age-derived defaults with no history
        """
        if not sessions:
            return self.default_profile(user)

        recent = sorted(sessions, key=lambda s: s.timestamp, reverse=True)
        recent = recent[: self.learning_window]

        pooled: List[np.ndarray] = []
        rr_all: List[np.ndarray] = []
        noise_levels: List[float] = []
        pattern = [NOISE_FLOOR] * NOISE_BUCKETS

        for session in recent:
            samples = clean(session.samples)
            if samples.size == 0:
                continue
            pooled.append(samples)

            peaks = detect_r_peaks(samples, self.threshold_factor, self.refractory_samples)
            intervals = rr_intervals_ms(peaks, self.sample_interval_ms)
            if intervals.size:
                rr_all.append(intervals)

            noise = mean_abs_diff(samples)
            noise_levels.append(noise)
            pattern[noise_bucket(session.timestamp)] += noise

        amplitudes = np.concatenate(pooled) if pooled else np.empty(0)
        avg_amplitude = mean_abs(amplitudes) if amplitudes.size else 1.0
        if avg_amplitude <= 0:
            avg_amplitude = 1.0
        rr = np.concatenate(rr_all) if rr_all else np.empty(0)
        avg_rr = float(np.mean(rr)) if rr.size else DEFAULT_RR_INTERVAL_MS

        peak_noise = max(pattern)
        noise_pattern = [p / peak_noise for p in pattern] if peak_noise > 0 else pattern

        return PersonalSignalProfile(
            baseline_variability=population_std(amplitudes),
            avg_amplitude=avg_amplitude,
            personal_rr_interval_ms=avg_rr,
            noise_pattern=noise_pattern,
            movement_tolerance=movement_tolerance(noise_levels),
            last_updated=recent[0].timestamp,
        )

    @staticmethod
    def default_profile(
        user: UserProfile,
        now: Optional[datetime] = None,
    ) -> PersonalSignalProfile:
        """Age-derived profile used when there is no history."""
        age = user.effective_age
        return PersonalSignalProfile(
            baseline_variability=0.1,
            avg_amplitude=1.0,
            personal_rr_interval_ms=60000.0 / max(1, 220 - age),
            noise_pattern=[NOISE_FLOOR] * NOISE_BUCKETS,
            movement_tolerance=DEFAULT_MOVEMENT_TOLERANCE,
            last_updated=now or datetime.now(),
        )

    # -------------------------------------------------------------------------
    # Filtering
    # -------------------------------------------------------------------------

    def adaptive_filter(
        self,
        signal: ArrayLike,
        profile: PersonalSignalProfile,
        movement_level: float = 0.0,
        environmental_noise: float = 0.0,
    ) -> np.ndarray:
        """
        Condition a live window against the personal profile.

        Args:
            signal: Sample window (empty samples are dropped first)
            profile: Personal profile
            movement_level: Externally estimated movement, 0 = still
            environmental_noise: Externally estimated ambient noise, 0 = quiet

        Returns:
            Conditioned window
        """
        x = clean(signal)
        if x.size == 0:
            return x

        x = _baseline_correction(x, profile.avg_amplitude)
        x = _noise_reduction(x, profile.movement_tolerance)
        x = _movement_compensation(x, profile.movement_tolerance, movement_level)
        x = _environment_adaptation(x, environmental_noise)
        return _amplitude_normalization(x, profile.avg_amplitude)

    # -------------------------------------------------------------------------
    # Anomalies
    # -------------------------------------------------------------------------

    def detect_personal_anomalies(
        self,
        signal: ArrayLike,
        profile: PersonalSignalProfile,
    ) -> PersonalAnomalyReport:
        """
        Compare a window against the personal profile.

        Returns:
            Report with signed relative deviations; unavailable with < 2 beats
        """
        x = clean(signal)
        peaks = detect_r_peaks(x, self.threshold_factor, self.refractory_samples)
        if len(peaks) < 2:
            return PersonalAnomalyReport(available=False)

        intervals = rr_intervals_ms(peaks, self.sample_interval_ms)
        current_rr = float(np.mean(intervals))

        amplitude_dev = _relative(mean_abs(x), profile.avg_amplitude)
        rr_dev = _relative(current_rr, profile.personal_rr_interval_ms)
        variability_change = _relative(population_std(x), profile.baseline_variability)
        irregular = is_irregular_rhythm(intervals, profile.personal_rr_interval_ms)

        risk = 30 * abs(amplitude_dev) + 40 * abs(rr_dev) + 20 * abs(variability_change)
        if irregular:
            risk += 30

        return PersonalAnomalyReport(
            available=True,
            amplitude_deviation=amplitude_dev,
            rr_deviation=rr_dev,
            variability_change=variability_change,
            irregular_rhythm=irregular,
            amplitude_anomaly=abs(amplitude_dev) > 0.3,
            rhythm_anomaly=abs(rr_dev) > 0.2,
            personal_risk_score=min(100.0, risk),
        )


# =============================================================================
# Helpers
# =============================================================================

def noise_bucket(timestamp: datetime) -> int:
    """Time-of-day bucket (0-9) for a session timestamp."""
    return min(NOISE_BUCKETS - 1, int(timestamp.hour / 2.4))


def movement_tolerance(noise_levels: Sequence[float]) -> float:
    """1.5x the 75th percentile per-session noise, floored at 0.1."""
    if not noise_levels:
        return DEFAULT_MOVEMENT_TOLERANCE
    ordered = sorted(noise_levels)
    p75 = ordered[int(math.floor(len(ordered) * 0.75))]
    return max(0.1, p75 * 1.5)


def is_irregular_rhythm(intervals: np.ndarray, personal_rr_ms: float) -> bool:
    """Mean normalized successive R-R difference above 0.15 (needs 3 intervals)."""
    if len(intervals) < 3 or personal_rr_ms <= 0:
        return False
    score = float(np.sum(np.abs(np.diff(intervals)))) / personal_rr_ms
    return score / len(intervals) > 0.15


def _relative(current: float, reference: float) -> float:
    if reference == 0:
        return 0.0
    return (current - reference) / reference


def _baseline_correction(x: np.ndarray, avg_amplitude: float, window: int = 50) -> np.ndarray:
    half = window // 2
    cumsum = np.concatenate(([0.0], np.cumsum(x)))
    idx = np.arange(x.size)
    start = np.maximum(0, idx - half)
    end = np.minimum(x.size, idx + half)
    means = (cumsum[end] - cumsum[start]) / (end - start)
    return x - means + avg_amplitude


def _noise_reduction(x: np.ndarray, tolerance: float, kernel: int = 5) -> np.ndarray:
    out = x.copy()
    for i in range(kernel, x.size - kernel):
        window = x[i - kernel: i + kernel + 1]
        if mean_abs_diff(window) > tolerance:
            out[i] = np.sort(window)[window.size // 2]
    return out


def _movement_compensation(x: np.ndarray, tolerance: float, level: float) -> np.ndarray:
    if level < 0.1:
        return x
    factor = min(level / tolerance, 2.0)
    if factor > 1.0:
        return x / factor
    return x


def _environment_adaptation(x: np.ndarray, noise: float) -> np.ndarray:
    if noise < 0.5 or x.size < 3:
        return x
    # In-place running average: each step sees the already smoothed left neighbour
    out = x.copy()
    for i in range(1, out.size - 1):
        out[i] = (out[i - 1] + out[i] + out[i + 1]) / 3.0
    return out


def _amplitude_normalization(x: np.ndarray, avg_amplitude: float) -> np.ndarray:
    span = float(np.max(x) - np.min(x))
    if span == 0:
        return x
    target = avg_amplitude * 2.0
    return (x - np.min(x)) * (target / span) - target / 2.0
