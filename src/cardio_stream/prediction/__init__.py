"""
Prediction Module
=================

Near-term cardiac risk prediction.
"""

from cardio_stream.prediction.detector import (
    PredictiveCardiacDetector,
    RiskComponents,
    RiskWeights,
    combine_risks,
    risk_level,
)
from cardio_stream.prediction.risk_model import (
    LinearRiskModel,
    RiskFeatures,
    RiskModel,
    RiskModelOutput,
)

__all__ = [
    "LinearRiskModel",
    "PredictiveCardiacDetector",
    "RiskComponents",
    "RiskFeatures",
    "RiskModel",
    "RiskModelOutput",
    "RiskWeights",
    "combine_risks",
    "risk_level",
]
