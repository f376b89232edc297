"""
Predictive Cardiac Detector
===========================

Combines history, the current health snapshot and the wearer's risk
factors into one near-term CardiacPrediction.

Risk Components (weight):
    pattern   (0.25)  heart-rate patterns across recent sessions
    current   (0.30)  the current HealthMetrics snapshot
    trend     (0.20)  last week against last month
    personal  (0.15)  demographics, conditions and biomarkers
    model     (0.10)  pluggable RiskModel output
    boost     (0.05)  recognised rhythm pattern

Level Bands:
    minimal <= 20 < low <= 40 < moderate <= 60 < high <= 80 < critical

Every component enters the combined risk with a positive weight, so a
higher component never lowers the combined risk or its level.
"""

import logging
from collections import Counter
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from cardio_stream.models.health import HealthMetrics
from cardio_stream.models.prediction import (
    Biomarkers,
    CardiacEventType,
    CardiacPrediction,
    RiskLevel,
)
from cardio_stream.models.profile import PersonalSignalProfile
from cardio_stream.models.session import ECGSession, UserProfile
from cardio_stream.prediction.recommendations import build_recommendations
from cardio_stream.prediction.risk_model import (
    LinearRiskModel,
    RiskFeatures,
    RiskModel,
    RiskModelOutput,
)


logger = logging.getLogger(__name__)


MODEL_VERSION = "1.0.0"
DEFAULT_AVG_HEART_RATE = 70.0
PATTERN_MIN_SESSIONS = 5
TREND_MIN_SESSIONS = 7
DRIFT_MIN_SESSIONS = 10
DRIFT_THRESHOLD = 0.15

TIME_WINDOWS: Dict[RiskLevel, str] = {
    RiskLevel.MINIMAL: "30 days",
    RiskLevel.LOW: "14 days",
    RiskLevel.MODERATE: "7 days",
    RiskLevel.HIGH: "3 days",
    RiskLevel.CRITICAL: "24 hours",
}


@dataclass(frozen=True, slots=True)
class RiskWeights:
    """Component weights for the combined risk."""

    pattern: float = 0.25
    current: float = 0.30
    trend: float = 0.20
    personal: float = 0.15
    model: float = 0.10
    pattern_boost: float = 0.05


@dataclass(frozen=True, slots=True)
class RiskComponents:
    """Component risks, each in [0, 100] except the boost (0 or 5)."""

    pattern: float
    current: float
    trend: float
    personal: float
    model: float
    pattern_boost: float


DEFAULT_RISK_WEIGHTS = RiskWeights()


def combine_risks(components: RiskComponents, weights: RiskWeights = DEFAULT_RISK_WEIGHTS) -> float:
    """Weighted sum of the component risks, clamped to [0, 100]."""
    total = (
        components.pattern * weights.pattern
        + components.current * weights.current
        + components.trend * weights.trend
        + components.personal * weights.personal
        + components.model * weights.model
        + components.pattern_boost * weights.pattern_boost
    )
    return max(0.0, min(100.0, total))


def risk_level(risk: float) -> RiskLevel:
    if risk <= 20:
        return RiskLevel.MINIMAL
    if risk <= 40:
        return RiskLevel.LOW
    if risk <= 60:
        return RiskLevel.MODERATE
    if risk <= 80:
        return RiskLevel.HIGH
    return RiskLevel.CRITICAL


class PredictiveCardiacDetector:
    """
    Near-term cardiac risk predictor.

    Stateless apart from configuration; the risk model is injected so it
    can be swapped without touching the other components.

    Example:
        detector = PredictiveCardiacDetector()
        prediction = detector.predict_cardiac_events(
            history, profile, user, metrics, analysis_time=datetime.now()
        )
        print(prediction.risk_level, prediction.time_window)
    """

    def __init__(
        self,
        risk_model: Optional[RiskModel] = None,
        weights: RiskWeights = DEFAULT_RISK_WEIGHTS,
        pattern_window: int = 20,
    ) -> None:
        self.risk_model: RiskModel = risk_model or LinearRiskModel()
        self.weights = weights
        self.pattern_window = pattern_window
        self._prediction_count: int = 0

    def predict_cardiac_events(
        self,
        history: Sequence[ECGSession],
        profile: PersonalSignalProfile,
        user: UserProfile,
        current_metrics: HealthMetrics,
        analysis_time: Optional[datetime] = None,
        biomarkers: Optional[Biomarkers] = None,
    ) -> CardiacPrediction:
        """
        Predict near-term cardiac risk.

        Args:
            history: Historical sessions in any order
            profile: Personal signal profile
            user: Wearer profile
            current_metrics: Latest health snapshot
            analysis_time: Reference time (defaults to now)
            biomarkers: Optional systolic blood pressure and stress level

        Returns:
            CardiacPrediction
        """
        analysis_time = analysis_time or datetime.now()
        biomarkers = biomarkers or Biomarkers()
        sessions = sorted(history, key=lambda s: s.timestamp, reverse=True)
        recent = sessions[: self.pattern_window]

        personal, risk_factors = personal_risk(user, biomarkers)
        model_output = self.risk_model.predict(
            build_features(sessions, user, current_metrics)
        )
        components = RiskComponents(
            pattern=pattern_risk(sessions, self.pattern_window),
            current=current_risk(current_metrics),
            trend=trend_risk(sessions, analysis_time),
            personal=personal,
            model=model_output.risk,
            pattern_boost=5.0 if pattern_confidence(recent) > 80 else 0.0,
        )
        overall = combine_risks(components, self.weights)
        level = risk_level(overall)
        event_type = infer_event_type(sessions, current_metrics)

        self._prediction_count += 1
        logger.info(
            f"Prediction [{self._prediction_count}]: risk={overall:.1f} ({level.value}), "
            f"event={event_type.value}, sessions={len(sessions)}"
        )

        return CardiacPrediction(
            event_type=event_type,
            risk_level=level,
            confidence=prediction_confidence(len(sessions), overall, model_output),
            risk_score=overall,
            time_window=TIME_WINDOWS[level],
            risk_factors=risk_factors,
            recommendations=build_recommendations(level, event_type),
            prediction_time=analysis_time,
            analytics_data={
                "components": asdict(components),
                "model": {
                    "risk": model_output.risk,
                    "confidence": model_output.confidence,
                },
                "profile": {
                    "personal_rr_interval_ms": profile.personal_rr_interval_ms,
                    "baseline_variability": profile.baseline_variability,
                },
                "data_quality": data_quality(sessions, analysis_time),
                "version": MODEL_VERSION,
            },
        )


# =============================================================================
# Components
# =============================================================================

def _mean_bpm(sessions: Sequence[ECGSession]) -> float:
    return sum(s.avg_bpm for s in sessions) / len(sessions) if sessions else 0.0


def bpm_drift(sessions: Sequence[ECGSession]) -> float:
    """
    Relative change of the newer half's mean BPM over the older half's.

    Args:
        sessions: Sessions ordered newest first
    """
    chronological = list(reversed(sessions))
    half = len(chronological) // 2
    older = _mean_bpm(chronological[:half])
    newer = _mean_bpm(chronological[half:])
    if older <= 0:
        return 0.0
    return (newer - older) / older


def pattern_risk(sessions: Sequence[ECGSession], window: int = 20) -> float:
    """Heart-rate variability, abnormal share and drift over recent sessions."""
    if len(sessions) < PATTERN_MIN_SESSIONS:
        return 25.0

    recent = list(sessions[:window])
    risk = 0.0
    variability = float(np.std([s.avg_bpm for s in recent]))
    if variability < 20:
        risk += 20
    elif variability > 200:
        risk += 15

    abnormal = sum(1 for s in recent if not s.is_normal)
    risk += abnormal / len(recent) * 30

    if len(sessions) >= DRIFT_MIN_SESSIONS and abs(bpm_drift(recent)) > DRIFT_THRESHOLD:
        risk += 25
    return min(100.0, risk)


def current_risk(metrics: HealthMetrics) -> float:
    risk = (100.0 - metrics.overall_score) * 0.5
    if metrics.cardiac_health < 50:
        risk += 30
    if metrics.rhythm_stability < 40:
        risk += 25
    if metrics.signal_quality < 30:
        risk += 10
    risk += (100.0 - metrics.personal_baseline) * 0.3
    return min(100.0, risk)


def trend_risk(sessions: Sequence[ECGSession], analysis_time: datetime) -> float:
    """Weekly against monthly heart rate, abnormal rate and monitoring frequency."""
    if len(sessions) < TREND_MIN_SESSIONS:
        return 20.0

    weekly = [s for s in sessions if (analysis_time - s.timestamp).days <= 7]
    monthly = [s for s in sessions if (analysis_time - s.timestamp).days <= 30]

    risk = 0.0
    if weekly and monthly:
        monthly_bpm = _mean_bpm(monthly)
        if monthly_bpm > 0 and abs(_mean_bpm(weekly) - monthly_bpm) / monthly_bpm > 0.20:
            risk += 30

        weekly_abnormal = sum(1 for s in weekly if not s.is_normal) / len(weekly)
        monthly_abnormal = sum(1 for s in monthly if not s.is_normal) / len(monthly)
        if weekly_abnormal > monthly_abnormal * 1.5:
            risk += 25

    per_day = len(weekly) / 7.0
    if per_day > 3:
        risk += 15
    elif per_day < 0.3:
        risk += 10
    return min(100.0, risk)


def personal_risk(user: UserProfile, biomarkers: Biomarkers) -> Tuple[float, List[str]]:
    """Demographic, condition and biomarker risk with its textual factors."""
    risk = 0.0
    factors: List[str] = []
    age = user.effective_age

    if age > 65:
        risk += 20
        factors.append("Age over 65")
    elif age > 45:
        risk += 10
        factors.append("Age over 45")

    if (user.gender or "").strip().lower() in ("male", "m") and age > 45:
        risk += 5
        factors.append("Male over 45")

    bmi = user.bmi
    if bmi > 30:
        risk += 15
        factors.append(f"Obesity (BMI {bmi:.1f})")
    elif bmi > 25:
        risk += 8
        factors.append(f"Overweight (BMI {bmi:.1f})")

    if user.has_heart_conditions:
        risk += 25
        factors.append("Pre-existing heart condition")

    conditions = " ".join(user.medical_conditions).lower()
    if "diabetes" in conditions:
        risk += 15
        factors.append("Diabetes")
    if "hypertension" in conditions or "high blood pressure" in conditions:
        risk += 12
        factors.append("Hypertension")
    if "cholesterol" in conditions:
        risk += 8
        factors.append("High cholesterol")

    if (user.activity_level or "").strip().lower() == "sedentary":
        risk += 10
        factors.append("Sedentary lifestyle")

    if biomarkers.systolic_bp is not None and biomarkers.systolic_bp > 140:
        risk += 15
        factors.append(f"Elevated systolic blood pressure ({biomarkers.systolic_bp:.0f} mmHg)")
    if biomarkers.stress_level is not None and biomarkers.stress_level > 0.7:
        risk += 10
        factors.append("High stress level")

    return min(100.0, risk), factors


def build_features(
    sessions: Sequence[ECGSession],
    user: UserProfile,
    metrics: HealthMetrics,
) -> RiskFeatures:
    rates = [s.avg_bpm for s in sessions if s.avg_bpm > 0]
    return RiskFeatures(
        age=float(user.effective_age),
        bmi=user.bmi,
        session_count=len(sessions),
        avg_heart_rate=sum(rates) / len(rates) if rates else DEFAULT_AVG_HEART_RATE,
        current_health_score=metrics.overall_score,
        rhythm_stability=metrics.rhythm_stability,
        cardiac_health=metrics.cardiac_health,
        has_heart_conditions=user.has_heart_conditions,
    )


def pattern_confidence(sessions: Sequence[ECGSession]) -> float:
    """Share of the dominant rhythm label in percent (50 with < 5 sessions)."""
    if len(sessions) < PATTERN_MIN_SESSIONS:
        return 50.0
    _, count = Counter(s.rhythm for s in sessions).most_common(1)[0]
    return count / len(sessions) * 100.0


def prediction_confidence(session_count: int, risk: float, model_output: RiskModelOutput) -> float:
    base = min(90.0, session_count * 2.0 + 30.0)
    if risk > 80 or risk < 10:
        base *= 0.8
    return min(95.0, (base + model_output.confidence) / 2)


def infer_event_type(sessions: Sequence[ECGSession], metrics: HealthMetrics) -> CardiacEventType:
    """
    Dominant event: rhythm first, then the newest heart rate, then drift.

    Args:
        sessions: Sessions ordered newest first
        metrics: Latest health snapshot
    """
    if metrics.rhythm_stability < 40:
        return CardiacEventType.ARRHYTHMIA

    if sessions:
        newest = sessions[0].avg_bpm
        if newest > 100:
            return CardiacEventType.TACHYCARDIA
        if 0 < newest < 60:
            return CardiacEventType.BRADYCARDIA

    if len(sessions) >= 2:
        drift = bpm_drift(sessions)
        if drift > DRIFT_THRESHOLD:
            return CardiacEventType.TACHYCARDIA
        if drift < -DRIFT_THRESHOLD:
            return CardiacEventType.BRADYCARDIA
    return CardiacEventType.GENERAL_CARDIAC_STRESS


def data_quality(sessions: Sequence[ECGSession], analysis_time: datetime) -> float:
    if not sessions:
        return 0.0
    recent = sum(1 for s in sessions if (analysis_time - s.timestamp).days <= 30)
    return 80.0 + min(15.0, len(sessions) * 0.5) + min(5.0, recent * 0.2)
