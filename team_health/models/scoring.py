"""
Activity and Communication Scoring

Per-source scoring strategies behind one shared signature, held in a
source-type registry.

Formula (activity):
    score = base + profile bonuses + recency bonus + strategy extras
Formula (communication):
    score = base + sum over active channels of
            (flat bonus + min(count * weight, cap))
Both are clamped to 0-100.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import BaseModel, Field

from team_health.models.entities import (
    InteractionCounts,
    ProfileSignals,
    ServiceObservation,
    clamp_score,
)
from team_health.utils.config import ScoringConfig

logger = logging.getLogger(__name__)


class ScoreResult(BaseModel):
    """Bounded score pair for one observation."""
    activity_score: int = Field(ge=0, le=100)
    communication_score: int = Field(ge=0, le=100)


ScoringStrategy = Callable[[ServiceObservation, datetime, ScoringConfig], ScoreResult]

# Integration names used by the platforms that map onto the same strategy
SOURCE_TYPE_ALIASES = {
    "azure-ad": "teams",
    "microsoft-teams": "teams",
    "google-meet": "google",
    "google-workspace": "google",
    "line-works": "generic",
}


def days_since(timestamp: Optional[datetime], reference_time: datetime) -> Optional[float]:
    """Fractional days between a timestamp and the reference time."""
    if timestamp is None:
        return None
    if reference_time.tzinfo is None:
        reference_time = reference_time.replace(tzinfo=timezone.utc)
    delta = (reference_time - timestamp).total_seconds() / 86400
    return max(delta, 0.0)


def step_bonus(days: Optional[float], steps: list[tuple[int, int]]) -> int:
    """Return the bonus of the first step whose day limit exceeds `days`."""
    if days is None:
        return 0
    for max_days, bonus in steps:
        if days < max_days:
            return bonus
    return 0


def profile_bonus(profile: ProfileSignals, weights: dict[str, int]) -> int:
    """Sum fixed bonuses for every present profile signal."""
    return sum(bonus for signal, bonus in weights.items() if getattr(profile, signal))


def score_communication(interactions: InteractionCounts, config: ScoringConfig) -> int:
    """Score communication from per-channel interaction volume.

    Each active channel earns a flat bonus plus a volume bonus capped per
    channel, so no single channel can dominate.
    """
    score = float(config.base_score)
    for kind in interactions.active_channels():
        weight = config.channel_volume_weights.get(kind.value, 0.0)
        volume = min(interactions.get(kind) * weight, config.channel_volume_cap)
        score += config.channel_flat_bonus + volume
    return clamp_score(round(score))


def _result(activity: float, observation: ServiceObservation, config: ScoringConfig) -> ScoreResult:
    return ScoreResult(
        activity_score=clamp_score(activity),
        communication_score=score_communication(observation.interactions, config),
    )


def score_generic(
    observation: ServiceObservation,
    reference_time: datetime,
    config: ScoringConfig,
) -> ScoreResult:
    """Fallback strategy for sources without a dedicated heuristic."""
    profile = observation.profile
    score = config.base_score
    score += profile_bonus(profile, {
        "has_real_name": 10,
        "has_email": 5,
        "has_avatar": 5,
        "has_department": 5,
        "has_title": 5,
    })
    score += step_bonus(days_since(observation.last_activity, reference_time), config.recency_steps)
    if profile.account_enabled and not profile.is_restricted:
        score += 10
    return _result(score, observation, config)


def score_slack(
    observation: ServiceObservation,
    reference_time: datetime,
    config: ScoringConfig,
) -> ScoreResult:
    profile = observation.profile
    score = config.base_score
    score += profile_bonus(profile, {
        "has_real_name": 10,
        "has_email": 10,
        "has_avatar": 5,
    })
    score += step_bonus(days_since(observation.last_activity, reference_time), config.recency_steps)
    if profile.account_enabled and not profile.is_restricted:
        score += 15
    return _result(score, observation, config)


def score_teams(
    observation: ServiceObservation,
    reference_time: datetime,
    config: ScoringConfig,
) -> ScoreResult:
    profile = observation.profile
    score = config.base_score
    if profile.account_enabled:
        score += 20
    score += profile_bonus(profile, {
        "has_real_name": 10,
        "has_location": 5,
    })
    if profile.has_department or profile.has_title:
        score += 10
    score += step_bonus(days_since(observation.last_activity, reference_time), config.recency_steps)
    if not profile.is_guest:
        score += 5
    return _result(score, observation, config)


def score_google(
    observation: ServiceObservation,
    reference_time: datetime,
    config: ScoringConfig,
) -> ScoreResult:
    profile = observation.profile
    score = config.base_score
    if profile.account_enabled:
        score += 25
    score += profile_bonus(profile, {
        "has_real_name": 10,
        "has_department": 10,
        "has_location": 5,
        "two_factor_enforced": 10,
        "is_admin": 5,
    })
    score += step_bonus(days_since(observation.last_activity, reference_time), config.recency_steps)
    return _result(score, observation, config)


def score_discord(
    observation: ServiceObservation,
    reference_time: datetime,
    config: ScoringConfig,
) -> ScoreResult:
    """Discord exposes no last-seen time; recent joins count as activity."""
    profile = observation.profile
    score = config.base_score
    score += profile_bonus(profile, {
        "has_nickname": 10,
        "has_avatar": 10,
    })
    if profile.role_count > 1:
        score += 15
    score += step_bonus(days_since(observation.joined_at, reference_time), [(30, 15), (90, 10)])
    score += step_bonus(days_since(observation.last_activity, reference_time), config.recency_steps)
    if not profile.is_restricted:
        score += 10
    return _result(score, observation, config)


def score_chatwork(
    observation: ServiceObservation,
    reference_time: datetime,
    config: ScoringConfig,
) -> ScoreResult:
    profile = observation.profile
    score = config.base_score
    score += profile_bonus(profile, {
        "has_real_name": 15,
        "has_avatar": 10,
        "has_title": 10,
        "has_handle": 15,
    })
    if profile.has_department:
        score += 10
    score += step_bonus(days_since(observation.last_activity, reference_time), config.recency_steps)
    return _result(score, observation, config)


DEFAULT_STRATEGIES: dict[str, ScoringStrategy] = {
    "generic": score_generic,
    "slack": score_slack,
    "teams": score_teams,
    "google": score_google,
    "discord": score_discord,
    "chatwork": score_chatwork,
}


class ScoringEngine:
    """Scores observations using the strategy registered for their source type."""

    def __init__(
        self,
        config: Optional[ScoringConfig] = None,
        strategies: Optional[dict[str, ScoringStrategy]] = None,
    ):
        """Initialize engine with configuration.

        Args:
            config: Scoring constants (base score, recency steps, channel caps)
            strategies: Extra or replacement strategies keyed by source type
        """
        self.config = config or ScoringConfig()
        self.strategies = DEFAULT_STRATEGIES.copy()
        for source_type, strategy in (strategies or {}).items():
            self.register_strategy(source_type, strategy)

    def register_strategy(self, source_type: str, strategy: ScoringStrategy) -> None:
        """Register or replace the strategy for a source type."""
        self.strategies[source_type.lower()] = strategy

    def get_strategy(self, source_type: str) -> ScoringStrategy:
        """Resolve the strategy for a source type, falling back to generic."""
        key = source_type.lower()
        strategy = self.strategies.get(key)
        if strategy is None and key in SOURCE_TYPE_ALIASES:
            strategy = self.strategies.get(SOURCE_TYPE_ALIASES[key])
        if strategy is None:
            logger.debug(f"No scoring strategy for '{source_type}', using generic")
            return self.strategies["generic"]
        return strategy

    def score(self, observation: ServiceObservation, reference_time: datetime) -> ScoreResult:
        """Compute both scores for one observation."""
        strategy = self.get_strategy(observation.source_type)
        return strategy(observation, reference_time, self.config)

    def annotate(self, observation: ServiceObservation, reference_time: datetime) -> ServiceObservation:
        """Return a copy with any missing score filled in.

        Scores supplied by the adapter are kept as-is.
        """
        if observation.is_scored:
            return observation

        result = self.score(observation, reference_time)
        update = {}
        if observation.activity_score is None:
            update["activity_score"] = result.activity_score
        if observation.communication_score is None:
            update["communication_score"] = result.communication_score
        return observation.model_copy(update=update)

    def annotate_all(
        self,
        observations: list[ServiceObservation],
        reference_time: datetime,
    ) -> list[ServiceObservation]:
        """Score every observation against the same reference time."""
        annotated = [self.annotate(o, reference_time) for o in observations]
        logger.info(f"Scored {len(annotated)} observations")
        return annotated
