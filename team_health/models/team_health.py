"""
Team Health Aggregation

Rolls the merged population up into an organization-level snapshot.
"""

import logging
import math
from datetime import datetime
from typing import Optional

from team_health.models.entities import (
    IsolationRisk,
    RelationshipType,
    TeamHealthSnapshot,
    UnifiedPerson,
    clamp_score,
)
from team_health.utils.config import HealthConfig

logger = logging.getLogger(__name__)


def safe_ratio(numerator: float, denominator: float) -> float:
    """Ratio that is 0 instead of an error for an empty denominator."""
    if denominator <= 0:
        return 0.0
    return numerator / denominator


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class TeamHealthAggregator:
    """Computes health score, risk histogram and participation counts.

    Formula:
        health = round(mean(activity_score)) + diversity_bonus + strong_bonus
        clamped to 0-100; exactly 0 for an empty population
    """

    def __init__(self, config: Optional[HealthConfig] = None):
        self.config = config or HealthConfig()

    def _diversity_bonus(self, people: list[UnifiedPerson]) -> int:
        distinct = len({p.relationship_type for p in people})
        for min_types, bonus in self.config.diversity_bonuses:
            if distinct >= min_types:
                return bonus
        return 0

    def _strong_relationship_bonus(self, people: list[UnifiedPerson]) -> int:
        strong = sum(
            1 for p in people
            if p.relationship_strength > self.config.strong_relationship_threshold
        )
        share = safe_ratio(strong, len(people))
        for min_share, bonus in self.config.strong_relationship_bonuses:
            if share > min_share:
                return bonus
        return 0

    def calculate(
        self,
        people: list[UnifiedPerson],
        generated_at: Optional[datetime] = None,
        organization_id: Optional[str] = None,
    ) -> TeamHealthSnapshot:
        """Build the snapshot for one cycle.

        Args:
            people: Merged population
            generated_at: Cycle reference time
            organization_id: Organization the snapshot belongs to

        Returns:
            TeamHealthSnapshot with all counts and the health score
        """
        if people:
            base_score = round_half_up(sum(p.activity_score for p in people) / len(people))
            diversity_bonus = self._diversity_bonus(people)
            strong_bonus = self._strong_relationship_bonus(people)
        else:
            base_score = diversity_bonus = strong_bonus = 0

        health_score = clamp_score(base_score + diversity_bonus + strong_bonus)

        isolation_risks = {risk.value: 0 for risk in IsolationRisk}
        relationship_distribution = {rel.value: 0 for rel in RelationshipType}
        service_participation: dict[str, int] = {}

        for person in people:
            isolation_risks[person.isolation_risk.value] += 1
            relationship_distribution[person.relationship_type.value] += 1
            for source_id in person.source_list:
                service_participation[source_id] = service_participation.get(source_id, 0) + 1

        snapshot = TeamHealthSnapshot(
            organization_id=organization_id,
            generated_at=generated_at,
            total_members=len(people),
            active_members=sum(1 for p in people if p.is_active),
            health_score=health_score,
            isolation_risks=isolation_risks,
            service_participation=dict(sorted(service_participation.items())),
            relationship_distribution=relationship_distribution,
            base_score=base_score,
            diversity_bonus=diversity_bonus,
            strong_relationship_bonus=strong_bonus,
        )

        logger.info(
            f"Team health: {snapshot.health_score}/100 across {snapshot.total_members} members "
            f"({isolation_risks['high']} high risk)"
        )

        return snapshot
