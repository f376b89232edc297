"""
Risk Model
==========

Pluggable scoring function behind the "model" component of the cardiac
risk prediction.

The default LinearRiskModel is a fixed linear heuristic, not a trained
model. Its constants are kept as-is:

    risk = 0.3 * age + 2 * bmi + 0.4 * (100 - current_score)
         + 20 * has_heart_conditions + 0.3 * (100 - rhythm_stability)

    confidence = min(95, 50 + min(30, 1.5 * sessions) + 2 * n_features)

Alternative models only need to satisfy the RiskModel protocol.
"""

from dataclasses import astuple, dataclass, fields
from typing import Protocol


@dataclass(frozen=True, slots=True)
class RiskFeatures:
    """Fixed feature vector fed to the risk model."""

    age: float
    bmi: float
    session_count: int
    avg_heart_rate: float
    current_health_score: float
    rhythm_stability: float
    cardiac_health: float
    has_heart_conditions: bool

    @property
    def feature_count(self) -> int:
        return len(fields(self))

    def as_dict(self) -> dict:
        return {f.name: v for f, v in zip(fields(self), astuple(self))}


@dataclass(frozen=True, slots=True)
class RiskModelOutput:
    """Model risk in [0, 100] and its confidence in percent."""

    risk: float
    confidence: float


class RiskModel(Protocol):
    """
    Protocol for risk scoring functions.

    Implementations must be deterministic for a given feature vector.
    """

    def predict(self, features: RiskFeatures) -> RiskModelOutput:
        ...


class LinearRiskModel:
    """Fixed-weight linear risk heuristic."""

    def __init__(
        self,
        age_weight: float = 0.3,
        bmi_weight: float = 2.0,
        score_weight: float = 0.4,
        conditions_weight: float = 20.0,
        rhythm_weight: float = 0.3,
    ) -> None:
        self.age_weight = age_weight
        self.bmi_weight = bmi_weight
        self.score_weight = score_weight
        self.conditions_weight = conditions_weight
        self.rhythm_weight = rhythm_weight

    def predict(self, features: RiskFeatures) -> RiskModelOutput:
        risk = (
            features.age * self.age_weight
            + features.bmi * self.bmi_weight
            + (100.0 - features.current_health_score) * self.score_weight
            + (self.conditions_weight if features.has_heart_conditions else 0.0)
            + (100.0 - features.rhythm_stability) * self.rhythm_weight
        )
        confidence = min(
            95.0,
            50.0 + min(30.0, features.session_count * 1.5) + features.feature_count * 2.0,
        )
        return RiskModelOutput(risk=max(0.0, min(100.0, risk)), confidence=confidence)
