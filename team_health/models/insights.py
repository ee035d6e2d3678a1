"""
Risk Insight Generation

Partitions the merged population by isolation risk and derives structured
recommendations and critical insights. Fact detection is kept apart from
message templating: `RiskInsightGenerator.generate` returns language-neutral
facts and `render_messages` fills in the prose for a locale.
"""

import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from team_health.models.entities import (
    IsolationRisk,
    RelationshipType,
    UnifiedPerson,
)
from team_health.models.team_health import safe_ratio
from team_health.utils.config import InsightsConfig

logger = logging.getLogger(__name__)


class Priority(str, Enum):
    """Recommendation priority, most urgent first."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Severity(str, Enum):
    """Insight severity."""
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class Timeline(str, Enum):
    """Suggested time frame for acting on a recommendation."""
    WITHIN_48_HOURS = "48_hours"
    WITHIN_1_WEEK = "1_week"
    WITHIN_2_WEEKS = "2_weeks"
    WITHIN_1_MONTH = "1_month"


class InsightCategory(str, Enum):
    ISOLATION_RATE = "isolation_rate"
    SOURCE_CONCENTRATION = "source_concentration"
    RELATIONSHIP_DIVERSITY = "relationship_diversity"
    STRONG_RELATIONSHIP_RATE = "strong_relationship_rate"


class Recommendation(BaseModel):
    """A suggested action for a group of people."""
    priority: Priority
    action: str
    timeline: Timeline
    relationship_group: Optional[str] = None
    target_keys: list[str] = Field(default_factory=list)
    target_names: list[str] = Field(default_factory=list)
    message: str = ""

    @property
    def count(self) -> int:
        return len(self.target_keys)


class RiskInsight(BaseModel):
    """An organization-level finding."""
    category: InsightCategory
    severity: Severity
    count: int = 0
    total: int = 0
    rate: float = Field(default=0.0, description="Percentage, one decimal")
    source: Optional[str] = None
    action_required: bool = False
    affected_keys: list[str] = Field(default_factory=list)
    message: str = ""


class RelationshipRiskBreakdown(BaseModel):
    """Risk distribution within one relationship type."""
    total: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    average_strength: float = 0.0


class RiskSummary(BaseModel):
    total: int = 0
    high_risk: int = 0
    medium_risk: int = 0
    low_risk: int = 0
    isolated: int = 0
    weak_relationships: int = 0
    isolation_rate: float = 0.0
    strong_relationship_rate: float = 0.0


class RiskAnalysisReport(BaseModel):
    """Complete risk analysis for one cycle."""
    summary: RiskSummary = Field(default_factory=RiskSummary)
    breakdown: dict[str, RelationshipRiskBreakdown] = Field(default_factory=dict)
    recommendations: list[Recommendation] = Field(default_factory=list)
    critical_insights: list[RiskInsight] = Field(default_factory=list)
    locale: Optional[str] = None


def percentage(count: int, total: int) -> float:
    """Percentage with one decimal, 0.0 for an empty total."""
    return round(safe_ratio(count, total) * 100, 1)


class RiskInsightGenerator:
    """Derives recommendations and critical insights from the population."""

    def __init__(self, config: Optional[InsightsConfig] = None, strong_threshold: int = 70):
        """Initialize generator.

        Args:
            config: Rule thresholds
            strong_threshold: Strength above which a relationship counts as strong
        """
        self.config = config or InsightsConfig()
        self.strong_threshold = strong_threshold

    def is_isolated(self, person: UnifiedPerson) -> bool:
        return (
            person.isolation_risk == IsolationRisk.HIGH
            and person.relationship_strength < self.config.isolated_strength_below
            and person.relationship_type != RelationshipType.SELF
        )

    def is_weak_relationship(self, person: UnifiedPerson) -> bool:
        return (
            person.relationship_strength < self.config.weak_strength_below
            and person.relationship_type != RelationshipType.SELF
        )

    def partition(self, people: list[UnifiedPerson]) -> dict[IsolationRisk, list[UnifiedPerson]]:
        """Split the population into disjoint risk buckets."""
        buckets: dict[IsolationRisk, list[UnifiedPerson]] = {risk: [] for risk in IsolationRisk}
        for person in people:
            buckets[person.isolation_risk].append(person)
        return buckets

    def _recommend(
        self,
        priority: Priority,
        action: str,
        timeline: Timeline,
        targets: list[UnifiedPerson],
        relationship_group: Optional[str] = None,
    ) -> Optional[Recommendation]:
        if not targets:
            return None
        return Recommendation(
            priority=priority,
            action=action,
            timeline=timeline,
            relationship_group=relationship_group,
            target_keys=[p.person_key for p in targets],
            target_names=[p.display_name or p.person_key for p in targets],
        )

    def build_recommendations(
        self,
        buckets: dict[IsolationRisk, list[UnifiedPerson]],
        isolated: list[UnifiedPerson],
        weak: list[UnifiedPerson],
    ) -> list[Recommendation]:
        """Fire every recommendation rule independently, in priority order."""
        high = buckets[IsolationRisk.HIGH]
        medium = buckets[IsolationRisk.MEDIUM]

        candidates = [
            self._recommend(
                Priority.CRITICAL, "immediate_one_on_one", Timeline.WITHIN_48_HOURS, isolated,
            ),
            self._recommend(
                Priority.HIGH, "reconnect_close_relationship", Timeline.WITHIN_1_WEEK,
                [p for p in high if p.relationship_type == RelationshipType.FRIEND],
                relationship_group=RelationshipType.FRIEND.value,
            ),
            self._recommend(
                Priority.HIGH, "team_reintegration", Timeline.WITHIN_1_WEEK,
                [p for p in high if p.relationship_type == RelationshipType.TEAMMATE],
                relationship_group=RelationshipType.TEAMMATE.value,
            ),
            self._recommend(
                Priority.HIGH, "activity_check_in", Timeline.WITHIN_1_WEEK,
                [p for p in high if p.relationship_type not in (
                    RelationshipType.FRIEND, RelationshipType.TEAMMATE,
                )],
                relationship_group="other",
            ),
            self._recommend(
                Priority.MEDIUM, "maintain_contact_rhythm", Timeline.WITHIN_2_WEEKS,
                [p for p in medium if p.relationship_type == RelationshipType.FREQUENT_CONTACT],
                relationship_group=RelationshipType.FREQUENT_CONTACT.value,
            ),
            self._recommend(
                Priority.MEDIUM, "increase_communication", Timeline.WITHIN_2_WEEKS,
                [p for p in medium if p.relationship_type != RelationshipType.FREQUENT_CONTACT],
                relationship_group="other",
            ),
            self._recommend(
                Priority.LOW, "relationship_building", Timeline.WITHIN_1_MONTH, weak,
            ),
        ]

        return [r for r in candidates if r is not None]

    def build_insights(
        self,
        people: list[UnifiedPerson],
        isolated: list[UnifiedPerson],
    ) -> list[RiskInsight]:
        """Detect organization-level findings."""
        insights: list[RiskInsight] = []
        total = len(people)

        if isolated:
            insights.append(RiskInsight(
                category=InsightCategory.ISOLATION_RATE,
                severity=Severity.WARNING,
                count=len(isolated),
                total=total,
                rate=percentage(len(isolated), total),
                action_required=True,
                affected_keys=[p.person_key for p in isolated],
            ))

        sources = sorted({source for p in people for source in p.source_list})
        for source in sources:
            members = [p for p in people if source in p.source_list]
            high = [p for p in members if p.isolation_risk == IsolationRisk.HIGH]
            share = safe_ratio(len(high), len(members))
            if len(members) > self.config.source_min_members and share > self.config.source_high_risk_share:
                insights.append(RiskInsight(
                    category=InsightCategory.SOURCE_CONCENTRATION,
                    severity=Severity.WARNING,
                    count=len(high),
                    total=len(members),
                    rate=percentage(len(high), len(members)),
                    source=source,
                    action_required=True,
                    affected_keys=[p.person_key for p in high],
                ))

        if not people:
            return insights

        distinct_types = len({p.relationship_type for p in people})
        if distinct_types <= self.config.diversity_max_types:
            insights.append(RiskInsight(
                category=InsightCategory.RELATIONSHIP_DIVERSITY,
                severity=Severity.WARNING,
                count=distinct_types,
                total=total,
            ))

        strong = [p for p in people if p.relationship_strength > self.strong_threshold]
        strong_share = safe_ratio(len(strong), total)
        if strong_share > self.config.strong_rate_success_above:
            severity = Severity.SUCCESS
        elif strong_share < self.config.strong_rate_warning_below:
            severity = Severity.WARNING
        else:
            severity = None

        if severity is not None:
            insights.append(RiskInsight(
                category=InsightCategory.STRONG_RELATIONSHIP_RATE,
                severity=severity,
                count=len(strong),
                total=total,
                rate=percentage(len(strong), total),
                action_required=severity == Severity.WARNING,
            ))

        return insights

    def build_breakdown(self, people: list[UnifiedPerson]) -> dict[str, RelationshipRiskBreakdown]:
        """Risk counts and average strength per relationship type."""
        breakdown: dict[str, RelationshipRiskBreakdown] = {}
        for rel_type in RelationshipType:
            group = [p for p in people if p.relationship_type == rel_type]
            counts = {risk: 0 for risk in IsolationRisk}
            for person in group:
                counts[person.isolation_risk] += 1
            breakdown[rel_type.value] = RelationshipRiskBreakdown(
                total=len(group),
                high=counts[IsolationRisk.HIGH],
                medium=counts[IsolationRisk.MEDIUM],
                low=counts[IsolationRisk.LOW],
                average_strength=round(
                    safe_ratio(sum(p.relationship_strength for p in group), len(group)), 1
                ),
            )
        return breakdown

    def generate(self, people: list[UnifiedPerson]) -> RiskAnalysisReport:
        """Build the language-neutral report (messages left empty)."""
        buckets = self.partition(people)
        isolated = [p for p in people if self.is_isolated(p)]
        weak = [p for p in people if self.is_weak_relationship(p)]
        strong = sum(1 for p in people if p.relationship_strength > self.strong_threshold)

        summary = RiskSummary(
            total=len(people),
            high_risk=len(buckets[IsolationRisk.HIGH]),
            medium_risk=len(buckets[IsolationRisk.MEDIUM]),
            low_risk=len(buckets[IsolationRisk.LOW]),
            isolated=len(isolated),
            weak_relationships=len(weak),
            isolation_rate=percentage(len(isolated), len(people)),
            strong_relationship_rate=percentage(strong, len(people)),
        )

        report = RiskAnalysisReport(
            summary=summary,
            breakdown=self.build_breakdown(people),
            recommendations=self.build_recommendations(buckets, isolated, weak),
            critical_insights=self.build_insights(people, isolated),
        )

        logger.info(
            f"Risk analysis: {summary.high_risk} high, {summary.medium_risk} medium, "
            f"{summary.isolated} isolated, {len(report.recommendations)} recommendations"
        )

        return report

