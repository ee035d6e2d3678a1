"""
Identity Resolution and Merging

Deduplicates observations from every source into one UnifiedPerson per
person key.
"""

import logging
from typing import Iterable, Optional

from team_health.models.entities import (
    RelationshipType,
    ServiceObservation,
    UnifiedPerson,
)
from team_health.models.risk import worst_risk

logger = logging.getLogger(__name__)


class MergeInvariantViolation(Exception):
    """Raised when records for different identities are merged together."""


def _later_wins(earlier, later):
    """Identity-field rule: a later non-empty value overwrites."""
    if later is None or later == "":
        return earlier
    return later


def _higher_relationship(a: RelationshipType, b: RelationshipType) -> RelationshipType:
    return a if a.rank >= b.rank else b


def _max_timestamp(a, b):
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def person_from_observation(observation: ServiceObservation) -> UnifiedPerson:
    """Lift one scored observation into a single-source UnifiedPerson."""
    if not observation.is_scored:
        raise MergeInvariantViolation(
            f"Observation {observation.source_id}:{observation.local_id} was not scored before merge"
        )

    return UnifiedPerson(
        person_key=observation.person_key,
        display_name=observation.display_name,
        email=observation.email,
        avatar_url=observation.avatar_url,
        source_list=[observation.source_id],
        activity_score=observation.activity_score,
        communication_score=observation.communication_score,
        worst_source_risk=observation.isolation_risk,
        relationship_type=observation.relationship_type,
        relationship_strength=observation.relationship_strength,
        is_active=observation.is_active,
        last_activity=observation.last_activity,
        interactions=observation.interactions,
        metadata=dict(observation.metadata),
    )


def merge_persons(earlier: UnifiedPerson, later: UnifiedPerson) -> UnifiedPerson:
    """Merge two records for the same person.

    Scores, strength, sources, activity flags, interaction counts and
    relationship type are merged commutatively. Display name, email,
    avatar and metadata follow adapter order: `later` overwrites `earlier`
    wherever it holds a non-empty value.

    Raises:
        MergeInvariantViolation: If the records belong to different keys
    """
    if earlier.person_key != later.person_key:
        raise MergeInvariantViolation(
            f"Cannot merge '{earlier.person_key}' with '{later.person_key}'"
        )

    metadata = dict(earlier.metadata)
    for key, value in later.metadata.items():
        if value is None or value == "":
            continue
        metadata[key] = value

    return UnifiedPerson(
        person_key=earlier.person_key,
        display_name=_later_wins(earlier.display_name, later.display_name),
        email=_later_wins(earlier.email, later.email),
        avatar_url=_later_wins(earlier.avatar_url, later.avatar_url),
        source_list=sorted(set(earlier.source_list) | set(later.source_list)),
        activity_score=max(earlier.activity_score, later.activity_score),
        communication_score=max(earlier.communication_score, later.communication_score),
        worst_source_risk=worst_risk([earlier.worst_source_risk, later.worst_source_risk]),
        relationship_type=_higher_relationship(earlier.relationship_type, later.relationship_type),
        relationship_strength=max(earlier.relationship_strength, later.relationship_strength),
        is_active=earlier.is_active or later.is_active,
        last_activity=_max_timestamp(earlier.last_activity, later.last_activity),
        interactions=earlier.interactions + later.interactions,
        metadata=metadata,
    )


class IdentityResolver:
    """Groups observations by person key and folds each group into one person.

    Position-sensitive fields depend on a fixed adapter order: observations
    are sorted by the index of their source in `source_order`, sources not
    listed follow in lexicographic order, and ties break on local id.
    A source that reports the same local id twice contributes only its
    latest record.
    The result therefore never depends on the order of the input list.
    """

    def __init__(self, source_order: Optional[Iterable[str]] = None):
        self.source_order = list(source_order or [])
        self._rank = {source_id: i for i, source_id in enumerate(self.source_order)}

    def _sort_key(self, observation: ServiceObservation) -> tuple:
        rank = self._rank.get(observation.source_id, len(self._rank))
        return (rank, observation.source_id, observation.local_id)

    @staticmethod
    def _freshness(observation: ServiceObservation) -> tuple:
        return (observation.observed_at, observation.model_dump_json())

    def deduplicate(self, observations: Iterable[ServiceObservation]) -> list[ServiceObservation]:
        """Keep one record per (source id, local id), the latest observed."""
        unique: dict[tuple[str, str, str], ServiceObservation] = {}
        duplicates = 0
        for observation in observations:
            key = (observation.person_key, observation.source_id, observation.local_id)
            current = unique.get(key)
            if current is None:
                unique[key] = observation
                continue
            duplicates += 1
            if self._freshness(observation) > self._freshness(current):
                unique[key] = observation

        if duplicates:
            logger.warning(f"Dropped {duplicates} duplicate records reported by the same source")
        return list(unique.values())

    def group(self, observations: Iterable[ServiceObservation]) -> dict[str, list[ServiceObservation]]:
        """Group observations by person key, each group in adapter order."""
        groups: dict[str, list[ServiceObservation]] = {}
        for observation in sorted(self.deduplicate(observations), key=self._sort_key):
            groups.setdefault(observation.person_key, []).append(observation)
        return groups

    def resolve(self, observations: Iterable[ServiceObservation]) -> list[UnifiedPerson]:
        """Merge observations into one UnifiedPerson per person key.

        Returns:
            Persons sorted by person key
        """
        groups = self.group(observations)
        people: list[UnifiedPerson] = []

        for person_key in sorted(groups):
            group = groups[person_key]
            person = person_from_observation(group[0])
            for observation in group[1:]:
                person = merge_persons(person, person_from_observation(observation))
            people.append(person)

        merged_count = sum(1 for g in groups.values() if len(g) > 1)
        logger.info(
            f"Resolved {sum(len(g) for g in groups.values())} observations into "
            f"{len(people)} people ({merged_count} merged across sources)"
        )

        return people


def resolve_identities(
    observations: Iterable[ServiceObservation],
    source_order: Optional[Iterable[str]] = None,
) -> list[UnifiedPerson]:
    """Convenience wrapper around IdentityResolver."""
    return IdentityResolver(source_order=source_order).resolve(observations)
