"""
Cardiac Prediction Models
=========================

Risk assessment produced once per completed recording (or on demand).

Risk levels are ordered by severity so callers can compare them:

    RiskLevel.MINIMAL < RiskLevel.LOW < ... < RiskLevel.CRITICAL
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class RiskLevel(str, Enum):
    """Discrete risk bands, ordered by severity."""

    MINIMAL = "minimal"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    RiskLevel.MINIMAL: 0,
    RiskLevel.LOW: 1,
    RiskLevel.MODERATE: 2,
    RiskLevel.HIGH: 3,
    RiskLevel.CRITICAL: 4,
}


class CardiacEventType(str, Enum):
    """Dominant event the prediction warns about."""

    ARRHYTHMIA = "arrhythmia"
    TACHYCARDIA = "tachycardia"
    BRADYCARDIA = "bradycardia"
    GENERAL_CARDIAC_STRESS = "general_cardiac_stress"


class CardiacPrediction(BaseModel):
    """
    Near-term cardiac risk prediction.

    Attributes:
        event_type: Dominant event type
        risk_level: Risk band derived from risk_score
        confidence: Confidence in percent, at most 95
        risk_score: Combined risk in [0, 100]
        time_window: Horizon the prediction covers
        risk_factors: Human-readable personal risk factors
        recommendations: Risk-level template plus an event-specific line
        prediction_time: When the prediction was made
        analytics_data: Component risks, model output and data quality
    """

    model_config = ConfigDict(frozen=True)

    event_type: CardiacEventType
    risk_level: RiskLevel
    confidence: float = Field(..., ge=0.0, le=100.0)
    risk_score: float = Field(..., ge=0.0, le=100.0)
    time_window: str
    risk_factors: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()
    prediction_time: datetime
    analytics_data: Dict[str, Any] = Field(default_factory=dict)


class Biomarkers(BaseModel):
    """Optional externally supplied measurements."""

    systolic_bp: Optional[float] = Field(default=None, gt=0, description="Systolic blood pressure (mmHg)")
    stress_level: Optional[float] = Field(default=None, ge=0.0, le=1.0, description="Stress in [0, 1]")
