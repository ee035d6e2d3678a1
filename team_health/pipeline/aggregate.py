"""
Aggregation Cycle

Turns the observations of one cycle into merged people, a team health
snapshot and a risk analysis. `aggregate` is a single synchronous,
side-effect-free pass; `CycleRunner` adds the concurrent fetch and the
snapshot store write around it.
"""

import asyncio
import logging
from datetime import datetime
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from team_health.models.entities import (
    ServiceObservation,
    TeamHealthSnapshot,
    UnifiedPerson,
    as_utc,
)
from team_health.models.insights import RiskAnalysisReport, RiskInsightGenerator
from team_health.models.messages import render_messages
from team_health.models.scoring import ScoringEngine
from team_health.models.team_health import TeamHealthAggregator
from team_health.pipeline.fetch import (
    AggregationContext,
    FetchError,
    fetch_observations,
)
from team_health.pipeline.resolve import IdentityResolver
from team_health.utils.cache import SnapshotStore
from team_health.utils.config import Config

logger = logging.getLogger(__name__)


class AggregationResult(BaseModel):
    """Everything one cycle produces."""
    persons: list[UnifiedPerson] = Field(default_factory=list)
    team_health: TeamHealthSnapshot = Field(default_factory=TeamHealthSnapshot)
    risk_analysis: RiskAnalysisReport = Field(default_factory=RiskAnalysisReport)
    errors: list[FetchError] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0


def default_reference_time(observations: list[ServiceObservation]) -> Optional[datetime]:
    """Latest observed_at, so the same input always scores the same way."""
    if not observations:
        return None
    return max(o.observed_at for o in observations)


def aggregate(
    observations: Iterable[ServiceObservation],
    *,
    fetch_errors: Optional[list[FetchError]] = None,
    source_order: Optional[list[str]] = None,
    reference_time: Optional[datetime] = None,
    organization_id: Optional[str] = None,
    config: Optional[Config] = None,
    locale: Optional[str] = None,
) -> AggregationResult:
    """Run scoring, identity resolution, health and risk analysis.

    Args:
        observations: All observations of the cycle, any order
        fetch_errors: Per-source failures collected during the fetch
        source_order: Adapter order for identity fields
        reference_time: Time recency is measured against
        organization_id: Organization the snapshot belongs to
        config: Full configuration (defaults used when omitted)
        locale: Message locale (defaults to config.insights.locale)

    Returns:
        AggregationResult with persons sorted by person key
    """
    config = config or Config()
    observations = list(observations)
    locale = locale or config.insights.locale

    reference_time = as_utc(reference_time) or default_reference_time(observations)

    if observations:
        scored = ScoringEngine(config.scoring).annotate_all(observations, reference_time)
    else:
        scored = []

    persons = IdentityResolver(source_order=source_order).resolve(scored)

    team_health = TeamHealthAggregator(config.health).calculate(
        persons,
        generated_at=reference_time,
        organization_id=organization_id,
    )

    generator = RiskInsightGenerator(
        config.insights,
        strong_threshold=config.health.strong_relationship_threshold,
    )
    risk_analysis = render_messages(generator.generate(persons), locale)

    return AggregationResult(
        persons=persons,
        team_health=team_health,
        risk_analysis=risk_analysis,
        errors=list(fetch_errors or []),
    )


class CycleRunner:
    """Runs full aggregation cycles.

    Cycles for the same organization are serialized by a per-organization
    lock; different organizations proceed in parallel.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        store: Optional[SnapshotStore] = None,
    ):
        """Initialize runner.

        Args:
            config: Full configuration
            store: Snapshot store (disabled store when omitted)
        """
        self.config = config or Config()
        self.store = store or SnapshotStore(enabled=False)
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiting: dict[str, int] = {}

    def _acquire_slot(self, organization_id: str) -> asyncio.Lock:
        lock = self._locks.setdefault(organization_id, asyncio.Lock())
        self._waiting[organization_id] = self._waiting.get(organization_id, 0) + 1
        return lock

    def _release_slot(self, organization_id: str) -> None:
        # Drop the lock once no cycle for the organization holds or awaits it
        self._waiting[organization_id] -= 1
        if self._waiting[organization_id] == 0:
            del self._waiting[organization_id]
            del self._locks[organization_id]

    async def run(
        self,
        context: AggregationContext,
        reference_time: Optional[datetime] = None,
        locale: Optional[str] = None,
    ) -> AggregationResult:
        """Fetch, aggregate and store one cycle for the context's organization."""
        lock = self._acquire_slot(context.organization_id)
        try:
            async with lock:
                return await self._run_cycle(context, reference_time, locale)
        finally:
            self._release_slot(context.organization_id)

    async def _run_cycle(
        self,
        context: AggregationContext,
        reference_time: Optional[datetime],
        locale: Optional[str],
    ) -> AggregationResult:
        logger.info(f"Starting cycle for {context.organization_id}")

        observations, errors = await fetch_observations(context, self.config.fetch)

        result = aggregate(
            observations,
            fetch_errors=errors,
            source_order=context.source_order,
            reference_time=reference_time,
            organization_id=context.organization_id,
            config=self.config,
            locale=locale,
        )

        await asyncio.to_thread(
            self.store.save,
            context.organization_id,
            result.team_health,
            summary=result.risk_analysis.summary,
            error_count=len(errors),
        )

        logger.info(
            f"Cycle for {context.organization_id} complete: "
            f"{len(result.persons)} people, health {result.team_health.health_score}, "
            f"{len(errors)} source errors"
        )
        return result
