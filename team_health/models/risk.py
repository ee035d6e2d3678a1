"""
Isolation Risk Classifier

Maps an activity/communication score pair to a coarse risk tier.
"""

from typing import Iterable

from team_health.models.entities import IsolationRisk

DEFAULT_LOW_THRESHOLD = 80.0
DEFAULT_MEDIUM_THRESHOLD = 60.0


def classify_isolation_risk(
    activity_score: float,
    communication_score: float,
    low_threshold: float = DEFAULT_LOW_THRESHOLD,
    medium_threshold: float = DEFAULT_MEDIUM_THRESHOLD,
) -> IsolationRisk:
    """Classify isolation risk from the average of both scores.

    The average is non-decreasing in each input, so raising either score
    can never make the tier more severe.
    """
    average = (activity_score + communication_score) / 2

    if average >= low_threshold:
        return IsolationRisk.LOW
    elif average >= medium_threshold:
        return IsolationRisk.MEDIUM
    else:
        return IsolationRisk.HIGH


def worst_risk(risks: Iterable[IsolationRisk]) -> IsolationRisk:
    """Return the most severe tier; LOW for an empty iterable."""
    return max(risks, key=lambda r: r.severity, default=IsolationRisk.LOW)
