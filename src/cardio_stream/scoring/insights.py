"""
Health Insights
===============

Rule list that turns component scores and context into insight lines.

Order: overall band, then component warnings, then time-of-day,
activity and stress context. Each rule contributes at most one line.
"""

from datetime import datetime
from typing import List

from cardio_stream.scoring.components import ComponentScores


def generate_insights(
    scores: ComponentScores,
    overall: float,
    current_time: datetime,
    stress_level: float = 0.0,
    activity_level: float = 0.0,
) -> List[str]:
    """
    Build the ordered insight lines for one scoring tick.

    Args:
        scores: Component scores
        overall: Weighted overall score
        current_time: Time of the reading (hour of day is used)
        stress_level: Estimated stress in [0, 1]
        activity_level: Estimated activity in [0, 1]

    Returns:
        Insight lines in display order
    """
    insights: List[str] = []

    if overall >= 90:
        insights.append("Excellent cardiac health. Your heart is performing optimally.")
    elif overall >= 80:
        insights.append("Good heart health with room for minor improvements.")
    elif overall >= 70:
        insights.append("Fair cardiac condition. Consider lifestyle adjustments.")
    elif overall >= 60:
        insights.append(
            "Below optimal heart health. Monitor closely and consult a healthcare provider."
        )
    else:
        insights.append(
            "Critical: significant cardiac irregularities detected. Seek immediate medical attention."
        )

    if scores.cardiac_health < 70:
        insights.append(
            "Cardiac function needs attention. Consider cardio exercise and stress management."
        )
    if scores.rhythm_stability < 75:
        insights.append("Irregular rhythm detected. Avoid caffeine and ensure adequate rest.")
    if scores.signal_quality < 60:
        insights.append("Poor signal quality. Check electrode placement and reduce movement.")
    if scores.trend_score < 70:
        insights.append("Declining trend detected. Recent readings show concerning patterns.")

    hour = current_time.hour
    if hour >= 22 or hour <= 6:
        insights.append("Nighttime reading. Heart rate is naturally lower during rest.")
    elif hour <= 10:
        insights.append(
            "Morning reading. Heart rate may be elevated by the cortisol awakening response."
        )

    if activity_level > 0.7:
        insights.append("High activity detected. Elevated heart rate is normal during exercise.")
    elif activity_level < 0.1 and scores.cardiac_health > 85:
        insights.append("Resting state with excellent heart health. Good recovery capability.")

    if stress_level > 0.7:
        insights.append("High stress detected. Practice deep breathing or meditation.")

    return insights
