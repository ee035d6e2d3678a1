"""
Tests for Team Health Aggregation
"""

import pytest

from team_health.models.entities import RelationshipType
from team_health.models.team_health import TeamHealthAggregator, round_half_up, safe_ratio


class TestHelpers:

    def test_safe_ratio_zero_denominator(self):
        assert safe_ratio(5, 0) == 0.0

    def test_safe_ratio(self):
        assert safe_ratio(1, 4) == 0.25

    @pytest.mark.parametrize("value,expected", [
        (70.5, 71),
        (71.5, 72),
        (70.49, 70),
        (0.0, 0),
    ])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected


class TestTeamHealthAggregator:

    @pytest.fixture
    def aggregator(self):
        return TeamHealthAggregator()

    def test_empty_population(self, aggregator):
        snapshot = aggregator.calculate([])
        assert snapshot.total_members == 0
        assert snapshot.active_members == 0
        assert snapshot.health_score == 0
        assert snapshot.isolation_risks == {"low": 0, "medium": 0, "high": 0}
        assert set(snapshot.relationship_distribution.values()) == {0}
        assert snapshot.generated_at is None

    def test_mean_activity_without_bonuses(self, aggregator, make_person):
        people = [
            make_person("a@x.com", activity=70, strength=10),
            make_person("b@x.com", activity=71, strength=10),
            make_person("c@x.com", activity=72, strength=10),
        ]
        assert aggregator.calculate(people).health_score == 71

    def test_mean_rounds_half_up(self, aggregator, make_person):
        people = [
            make_person("a@x.com", activity=70, strength=10),
            make_person("b@x.com", activity=71, strength=10),
        ]
        assert aggregator.calculate(people).base_score == 71

    def test_diversity_bonus(self, aggregator, make_person):
        types = [
            RelationshipType.FRIEND,
            RelationshipType.TEAMMATE,
            RelationshipType.CONTACT,
            RelationshipType.FREQUENT_CONTACT,
        ]
        four = [make_person(f"{i}@x.com", activity=50, relationship_type=t, strength=10) for i, t in enumerate(types)]
        three = four[:3]
        assert aggregator.calculate(four).diversity_bonus == 5
        assert aggregator.calculate(three).diversity_bonus == 3
        assert aggregator.calculate(four[:2]).diversity_bonus == 0

    def test_strong_relationship_bonus(self, aggregator, make_person):
        def population(strong_count):
            return [
                make_person(f"{i}@x.com", activity=50, strength=80 if i < strong_count else 10)
                for i in range(10)
            ]

        assert aggregator.calculate(population(4)).strong_relationship_bonus == 5
        # exactly 30% is not above 30%
        assert aggregator.calculate(population(3)).strong_relationship_bonus == 3
        assert aggregator.calculate(population(2)).strong_relationship_bonus == 0

    def test_strength_of_exactly_threshold_is_not_strong(self, aggregator, make_person):
        people = [make_person("a@x.com", activity=50, strength=70)]
        assert aggregator.calculate(people).strong_relationship_bonus == 0

    def test_score_clamped_to_100(self, aggregator, make_person):
        types = list(RelationshipType)
        people = [
            make_person(f"{i}@x.com", activity=100, relationship_type=types[i % len(types)], strength=90)
            for i in range(10)
        ]
        snapshot = aggregator.calculate(people)
        assert snapshot.base_score + snapshot.diversity_bonus + snapshot.strong_relationship_bonus > 100
        assert snapshot.health_score == 100

    def test_histograms(self, aggregator, make_person):
        people = [
            make_person("a@x.com", activity=90, communication=90, sources=["slack", "google"]),
            make_person("b@x.com", activity=65, communication=65, sources=["slack"], is_active=False),
            make_person("c@x.com", activity=30, communication=30, sources=["teams"],
                        relationship_type=RelationshipType.FRIEND),
        ]
        snapshot = aggregator.calculate(people, organization_id="acme")

        assert snapshot.organization_id == "acme"
        assert snapshot.total_members == 3
        assert snapshot.active_members == 2
        assert snapshot.isolation_risks == {"low": 1, "medium": 1, "high": 1}
        assert sum(snapshot.isolation_risks.values()) == snapshot.total_members
        assert snapshot.service_participation == {"google": 1, "slack": 2, "teams": 1}
        assert snapshot.relationship_distribution["contact"] == 2
        assert snapshot.relationship_distribution["friend"] == 1
        assert sum(snapshot.relationship_distribution.values()) == snapshot.total_members
