"""
Recommendations
===============

Risk-level templates plus one event-specific line.
"""

from typing import Dict, List

from cardio_stream.models.prediction import CardiacEventType, RiskLevel


LEVEL_RECOMMENDATIONS: Dict[RiskLevel, List[str]] = {
    RiskLevel.MINIMAL: [
        "Continue your current healthy routine",
        "Maintain regular physical activity",
        "Keep recording an ECG weekly",
    ],
    RiskLevel.LOW: [
        "Add more cardiovascular exercise to your week",
        "Focus on heart-healthy nutrition",
        "Record an ECG two to three times a week",
    ],
    RiskLevel.MODERATE: [
        "Schedule an appointment with your healthcare provider",
        "Review your current medications with your doctor",
        "Increase ECG monitoring frequency",
        "Practice stress reduction techniques",
    ],
    RiskLevel.HIGH: [
        "Contact your doctor within 48 hours",
        "Keep an emergency contact readily available",
        "Record an ECG daily",
        "Avoid strenuous physical activity",
    ],
    RiskLevel.CRITICAL: [
        "Seek immediate medical attention",
        "Call emergency services if you have symptoms",
        "Take prescribed emergency medications if advised",
        "Inform family members of your condition",
    ],
}


EVENT_RECOMMENDATIONS: Dict[CardiacEventType, str] = {
    CardiacEventType.ARRHYTHMIA: "Avoid caffeine and stimulants",
    CardiacEventType.TACHYCARDIA: (
        "Your heart rate is trending high: practice deep breathing exercises"
    ),
    CardiacEventType.BRADYCARDIA: "Light exercise may help if approved by your doctor",
}


def build_recommendations(level: RiskLevel, event_type: CardiacEventType) -> List[str]:
    """Template for the risk level followed by the event-specific line, if any."""
    recommendations = list(LEVEL_RECOMMENDATIONS[level])
    extra = EVENT_RECOMMENDATIONS.get(event_type)
    if extra:
        recommendations.append(extra)
    return recommendations
