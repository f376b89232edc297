"""
Scoring Tests
=============

Continuous health scoring components, bands and insights.
"""

from datetime import datetime, timedelta

import numpy as np
import pytest
from pydantic import ValidationError

from cardio_stream.models.health import HealthStatus
from cardio_stream.models.session import UserProfile
from cardio_stream.scoring import ComponentScores, ContinuousHealthScorer, health_status, weighted_overall
from cardio_stream.scoring.health_scorer import arrhythmia_score, hrv_score, trend_score
from cardio_stream.scoring.insights import generate_insights
from cardio_stream.signals.adaptive_processor import AdaptiveSignalProcessor


@pytest.fixture
def scorer() -> ContinuousHealthScorer:
    return ContinuousHealthScorer(sample_interval_ms=8.0)


@pytest.fixture
def own_profile(ecg_signal, session_factory, sample_user):
    """Profile learned from the same synthetic signal that is scored."""
    session = session_factory(datetime(2026, 3, 1, 9), samples=ecg_signal)
    return AdaptiveSignalProcessor().learn_personal_profile([session], sample_user)


class TestWeightsAndBands:
    def test_all_hundred_is_hundred(self):
        scores = ComponentScores(100.0, 100.0, 100.0, 100.0, 100.0)

        assert weighted_overall(scores) == 100.0

    def test_weighted_sum(self):
        scores = ComponentScores(
            cardiac_health=80.0,
            rhythm_stability=60.0,
            signal_quality=100.0,
            trend_score=50.0,
            personal_baseline=0.0,
        )

        assert weighted_overall(scores) == pytest.approx(32 + 15 + 15 + 5 + 0)

    @pytest.mark.parametrize(
        "overall, status",
        [
            (95.0, HealthStatus.EXCELLENT),
            (90.0, HealthStatus.EXCELLENT),
            (89.9, HealthStatus.GOOD),
            (70.0, HealthStatus.FAIR),
            (60.0, HealthStatus.POOR),
            (59.9, HealthStatus.CRITICAL),
        ],
    )
    def test_status_bands(self, overall, status):
        assert health_status(overall) == status


class TestContinuousHealthScorer:
    """Full snapshots on synthetic windows."""

    def test_regular_ecg_scores_well(self, scorer, ecg_signal, own_profile, sample_user):
        metrics = scorer.calculate_real_time_score(
            ecg_signal, own_profile, [], sample_user, current_time=datetime(2026, 3, 15, 14)
        )

        assert metrics.cardiac_health > 90
        assert metrics.rhythm_stability > 85
        assert metrics.personal_baseline == 100.0
        assert metrics.trend_score == 75.0
        assert metrics.overall_score >= 80
        assert metrics.health_status in (HealthStatus.EXCELLENT, HealthStatus.GOOD)

    def test_empty_window_uses_conservative_defaults(self, scorer, own_profile, sample_user):
        metrics = scorer.calculate_real_time_score(
            [], own_profile, [], sample_user, current_time=datetime(2026, 3, 15, 14)
        )

        assert metrics.cardiac_health == 50.0
        assert metrics.rhythm_stability == 50.0
        assert metrics.signal_quality == 0.0
        assert metrics.personal_baseline == 50.0
        assert metrics.overall_score == pytest.approx(20 + 12.5 + 0 + 7.5 + 5)
        assert metrics.health_status == HealthStatus.CRITICAL

    def test_every_score_in_range(self, scorer, sample_user):
        rng = np.random.default_rng(7)
        noise = rng.normal(0, 5, 2000)
        profile = AdaptiveSignalProcessor.default_profile(sample_user)

        metrics = scorer.calculate_real_time_score(noise, profile, [], sample_user)

        for value in (
            metrics.cardiac_health,
            metrics.rhythm_stability,
            metrics.signal_quality,
            metrics.trend_score,
            metrics.personal_baseline,
            metrics.overall_score,
        ):
            assert 0.0 <= value <= 100.0

    def test_irregular_rhythm_lowers_stability(self, scorer, ecg_signal, irregular_ecg_signal, own_profile, sample_user):
        regular = scorer.calculate_real_time_score(ecg_signal, own_profile, [], sample_user)
        irregular = scorer.calculate_real_time_score(irregular_ecg_signal, own_profile, [], sample_user)

        assert irregular.rhythm_stability < regular.rhythm_stability
        assert irregular.rhythm_stability < 75

    def test_health_timeline(self, scorer, ecg_signal, own_profile, sample_user, session_factory):
        sessions = [
            session_factory(datetime(2026, 3, 1, 9), samples=ecg_signal),
            session_factory(datetime(2026, 3, 2, 9)),
            session_factory(datetime(2026, 3, 3, 9), samples=ecg_signal),
        ]

        timeline = scorer.generate_health_timeline(sessions, own_profile, sample_user)

        assert [m.timestamp for m in timeline] == [datetime(2026, 3, 1, 9), datetime(2026, 3, 3, 9)]

    def test_snapshot_is_immutable(self, scorer, ecg_signal, own_profile, sample_user):
        metrics = scorer.calculate_real_time_score(
            ecg_signal, own_profile, [], sample_user, current_time=datetime(2026, 3, 15, 14)
        )

        with pytest.raises(ValidationError):
            metrics.overall_score = -5.0
        assert isinstance(metrics.insights, tuple)
        with pytest.raises(AttributeError):
            metrics.insights.append("changed")


class TestComponentHelpers:
    def test_hrv_needs_two_intervals(self):
        assert hrv_score(np.array([800.0]), 30) == 75.0

    def test_hrv_expectation_floor_for_old_age(self):
        intervals = np.array([800.0, 805.0, 800.0])

        assert hrv_score(intervals, 120) == pytest.approx(50.0)

    def test_arrhythmia_penalty(self):
        regular = np.array([800.0, 810.0, 800.0, 810.0])
        erratic = np.array([500.0, 1100.0, 500.0, 1100.0])

        assert arrhythmia_score(regular) == 100.0
        assert arrhythmia_score(erratic) == 70.0

    def test_trend_needs_three_sessions(self, session_factory):
        now = datetime(2026, 3, 15)
        history = [session_factory(now - timedelta(days=1))]

        assert trend_score(history, now) == 75.0

    def test_trend_penalises_drift_and_abnormal_week(self, session_factory):
        now = datetime(2026, 3, 15)
        history = [
            session_factory(now - timedelta(days=d), avg_bpm=110.0, status="Tachycardia")
            for d in (1, 2, 3)
        ] + [session_factory(now - timedelta(days=d), avg_bpm=70.0) for d in (15, 20, 25)]

        assert trend_score(history, now) == pytest.approx(100 - 20 - 25)


class TestInsights:
    def test_order_and_context(self):
        scores = ComponentScores(65.0, 70.0, 50.0, 60.0, 100.0)

        insights = generate_insights(
            scores, 55.0, datetime(2026, 3, 15, 23), stress_level=0.9, activity_level=0.8
        )

        assert insights[0].startswith("Critical")
        assert insights[1].startswith("Cardiac function")
        assert insights[2].startswith("Irregular rhythm")
        assert insights[3].startswith("Poor signal quality")
        assert insights[4].startswith("Declining trend")
        assert insights[5].startswith("Nighttime")
        assert insights[6].startswith("High activity")
        assert insights[7].startswith("High stress")

    def test_resting_excellent(self):
        scores = ComponentScores(95.0, 95.0, 95.0, 95.0, 95.0)

        insights = generate_insights(scores, 95.0, datetime(2026, 3, 15, 15))

        assert insights == [
            "Excellent cardiac health. Your heart is performing optimally.",
            "Resting state with excellent heart health. Good recovery capability.",
        ]

    def test_morning_reading(self):
        scores = ComponentScores(80.0, 80.0, 80.0, 80.0, 80.0)

        insights = generate_insights(scores, 80.0, datetime(2026, 3, 15, 8))

        assert any(line.startswith("Morning reading") for line in insights)
