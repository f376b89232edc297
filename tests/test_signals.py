"""
Signal Tests
============

Streaming beat detection, batch R-peak detection and the adaptive
personal-baseline processor.
"""

from datetime import datetime

import numpy as np
import pytest

from cardio_stream.errors import ProfileLockedError
from cardio_stream.models.session import UserProfile
from cardio_stream.signals import AdaptiveSignalProcessor, BeatDetector, detect_r_peaks, rr_intervals_ms
from cardio_stream.signals.adaptive_processor import movement_tolerance, noise_bucket


class TestBeatDetector:
    """Adaptive-threshold streaming detector."""

    def test_spike_train_heart_rate(self, spike_train):
        detector = BeatDetector(sample_interval_ms=8.0)

        beats = detector.extend(spike_train)

        assert beats == 20
        assert detector.heart_rate == pytest.approx(75.0)

    def test_beat_timestamps_follow_sample_clock(self, spike_train):
        detector = BeatDetector(sample_interval_ms=8.0)

        detector.extend(spike_train[:300])

        assert detector.series.beat_timestamps_ms == [400.0, 1200.0, 2000.0]

    def test_history_is_bounded(self, spike_train):
        detector = BeatDetector(sample_interval_ms=8.0)

        detector.extend(spike_train)

        series = detector.series
        assert len(series.beat_timestamps_ms) == 10
        assert len(series.rate_history) == 5

    def test_heart_rate_undefined_with_one_beat(self, spike_train):
        detector = BeatDetector()

        detector.extend(spike_train[:100])

        assert detector.beat_count == 1
        assert detector.heart_rate == 0.0

    def test_synthetic_ecg_heart_rate(self, ecg_signal):
        detector = BeatDetector(sample_interval_ms=8.0)

        detector.extend(ecg_signal)

        assert detector.beat_count == 40
        assert detector.heart_rate == pytest.approx(72.1, abs=1.0)

    def test_empty_samples_never_form_a_beat(self):
        detector = BeatDetector()
        samples = [0.1, 0.2, 0.0, 1.0, 0.0, 0.2, 0.1]

        assert detector.extend(samples) == 0

    def test_refractory_period_suppresses_close_peaks(self):
        detector = BeatDetector(refractory_samples=40)
        samples = [0.1] * 100
        samples[20] = 1.0
        samples[40] = 1.0
        samples[70] = 1.0

        detector.extend(samples)

        assert detector.series.beat_timestamps_ms == [20 * 8.0, 70 * 8.0]

    def test_reset_clears_history(self, spike_train):
        detector = BeatDetector()
        detector.extend(spike_train)

        detector.reset()

        assert detector.heart_rate == 0.0
        assert detector.beat_count == 0
        assert detector.get_metrics()["samples_processed"] == 0

    def test_invalid_sample_interval(self):
        with pytest.raises(ValueError):
            BeatDetector(sample_interval_ms=0)


class TestRPeaks:
    """Batch detection shared by scorer and profile learner."""

    def test_peaks_at_r_waves(self, ecg_signal):
        peaks = detect_r_peaks(ecg_signal)

        assert len(peaks) == 40
        assert peaks[0] == 10
        assert peaks[1] == 112

    def test_rr_intervals(self, ecg_signal):
        intervals = rr_intervals_ms(detect_r_peaks(ecg_signal), 8.0)

        assert set(np.round(intervals).astype(int)) == {816, 848}

    def test_too_short_signal(self):
        assert len(detect_r_peaks([0.1, 1.0])) == 0


class TestAdaptiveSignalProcessor:
    """Profile learning, filtering and anomaly detection."""

    def test_default_profile_from_age(self):
        processor = AdaptiveSignalProcessor()
        user = UserProfile(user_id="u", age=40)

        profile = processor.learn_personal_profile([], user)

        assert profile.personal_rr_interval_ms == pytest.approx(60000 / 180)
        assert profile.noise_pattern == [0.1] * 10

    def test_default_profile_without_age_uses_thirty(self):
        profile = AdaptiveSignalProcessor.default_profile(UserProfile(user_id="u"))

        assert profile.personal_rr_interval_ms == pytest.approx(60000 / 190)

    def test_learned_profile(self, ecg_signal, session_factory, sample_user):
        processor = AdaptiveSignalProcessor(sample_interval_ms=8.0)
        timestamp = datetime(2026, 3, 1, 9, 30)
        sessions = [session_factory(timestamp, samples=ecg_signal)]

        profile = processor.learn_personal_profile(sessions, sample_user)

        assert profile.personal_rr_interval_ms == pytest.approx(832.0, abs=1.0)
        assert profile.avg_amplitude == pytest.approx(float(np.mean(np.abs(ecg_signal))))
        assert profile.last_updated == timestamp
        assert max(profile.noise_pattern) == pytest.approx(1.0)
        assert profile.noise_pattern[noise_bucket(timestamp)] == pytest.approx(1.0)

    def test_learning_is_deterministic(self, ecg_signal, session_factory, sample_user):
        processor = AdaptiveSignalProcessor()
        sessions = [
            session_factory(datetime(2026, 3, 1, 9), samples=ecg_signal),
            session_factory(datetime(2026, 3, 2, 21), samples=ecg_signal * 1.1),
        ]

        first = processor.learn_personal_profile(sessions, sample_user)
        second = processor.learn_personal_profile(list(reversed(sessions)), sample_user)

        assert first == second

    def test_relearn_refused_while_locked(self, sample_user):
        processor = AdaptiveSignalProcessor()
        processor.lock()

        with pytest.raises(ProfileLockedError):
            processor.relearn([], sample_user)

        processor.unlock()
        assert processor.relearn([], sample_user) is processor.profile

    def test_filter_normalizes_to_profile_amplitude(self, ecg_signal, sample_user):
        processor = AdaptiveSignalProcessor()
        profile = processor.default_profile(sample_user)

        filtered = processor.adaptive_filter(ecg_signal, profile)

        assert filtered.size == ecg_signal.size
        assert float(filtered.max() - filtered.min()) == pytest.approx(2.0 * profile.avg_amplitude)

    def test_filter_of_empty_window(self, sample_user):
        processor = AdaptiveSignalProcessor()
        profile = processor.default_profile(sample_user)

        assert processor.adaptive_filter([0.0, float("nan")], profile).size == 0

    def test_no_anomaly_against_own_profile(self, ecg_signal, session_factory, sample_user):
        processor = AdaptiveSignalProcessor()
        profile = processor.learn_personal_profile(
            [session_factory(datetime(2026, 3, 1, 9), samples=ecg_signal)], sample_user
        )

        report = processor.detect_personal_anomalies(ecg_signal, profile)

        assert report.available
        assert not report.irregular_rhythm
        assert not report.amplitude_anomaly
        assert not report.rhythm_anomaly
        assert report.personal_risk_score < 5

    def test_irregular_rhythm_flagged(self, irregular_ecg_signal, sample_user):
        processor = AdaptiveSignalProcessor()
        profile = processor.default_profile(sample_user)

        report = processor.detect_personal_anomalies(irregular_ecg_signal, profile)

        assert report.irregular_rhythm
        assert report.personal_risk_score >= 30

    def test_unavailable_with_fewer_than_two_beats(self, sample_user):
        processor = AdaptiveSignalProcessor()
        profile = processor.default_profile(sample_user)

        report = processor.detect_personal_anomalies([0.1, 0.2, 0.1], profile)

        assert not report.available
        assert report.personal_risk_score == 0.0


class TestProfileHelpers:
    def test_noise_bucket_boundaries(self):
        assert noise_bucket(datetime(2026, 1, 1, 0, 0)) == 0
        assert noise_bucket(datetime(2026, 1, 1, 12, 0)) == 5
        assert noise_bucket(datetime(2026, 1, 1, 23, 59)) == 9

    def test_movement_tolerance_floor(self):
        assert movement_tolerance([0.01, 0.02]) == pytest.approx(0.1)
        assert movement_tolerance([0.1, 0.2, 0.3, 0.4]) == pytest.approx(0.6)
