"""
Data Models and Analytical Components

Pydantic models for entities and analytical model implementations.
"""

from team_health.models.entities import (
    ChannelKind,
    InteractionCounts,
    IsolationRisk,
    ProfileSignals,
    RelationshipType,
    ServiceObservation,
    TeamHealthSnapshot,
    UnifiedPerson,
)
from team_health.models.risk import classify_isolation_risk, worst_risk
from team_health.models.scoring import ScoreResult, ScoringEngine
from team_health.models.team_health import TeamHealthAggregator
from team_health.models.insights import (
    Recommendation,
    RiskAnalysisReport,
    RiskInsight,
    RiskInsightGenerator,
)
from team_health.models.messages import render_messages

__all__ = [
    "ChannelKind",
    "InteractionCounts",
    "IsolationRisk",
    "ProfileSignals",
    "RelationshipType",
    "ServiceObservation",
    "TeamHealthSnapshot",
    "UnifiedPerson",
    "classify_isolation_risk",
    "worst_risk",
    "ScoreResult",
    "ScoringEngine",
    "TeamHealthAggregator",
    "Recommendation",
    "RiskAnalysisReport",
    "RiskInsight",
    "RiskInsightGenerator",
    "render_messages",
]
