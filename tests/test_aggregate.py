"""
Tests for Fetch Fan-in, Aggregation and Cycle Runner
"""

import asyncio
import pytest
from datetime import timedelta
from itertools import permutations

from team_health.models.entities import IsolationRisk
from team_health.pipeline.aggregate import CycleRunner, aggregate
from team_health.pipeline.fetch import (
    AdapterFetchError,
    AggregationContext,
    ErrorSeverity,
    FetchError,
    SourceAdapter,
    classify_severity,
    fetch_observations,
)
from team_health.pipeline.ingest import StaticSourceAdapter
from team_health.utils.cache import SnapshotStore


class FailingAdapter(SourceAdapter):
    """Adapter that always raises the given exception."""

    def __init__(self, source_id, error):
        super().__init__(source_id=source_id)
        self.error = error

    async def fetch(self, credentials=None):
        raise self.error


class SlowAdapter(SourceAdapter):
    """Adapter that never finishes within a short timeout."""

    async def fetch(self, credentials=None):
        await asyncio.sleep(5)
        return []


class TrackingAdapter(SourceAdapter):
    """Records how many fetches run at the same time."""

    def __init__(self, source_id, state, observations=None):
        super().__init__(source_id=source_id)
        self.state = state
        self.observations = observations or []

    async def fetch(self, credentials=None):
        self.state["active"] += 1
        self.state["max"] = max(self.state["max"], self.state["active"])
        await asyncio.sleep(0.05)
        self.state["active"] -= 1
        return list(self.observations)


class CredentialAdapter(SourceAdapter):
    async def fetch(self, credentials=None):
        if not credentials or credentials.get("token") != "secret":
            raise AdapterFetchError(self.source_id, "missing token")
        return []


class TestClassifySeverity:

    @pytest.mark.parametrize("message", [
        "Insufficient permission for users.list",
        "missing scope users:read",
        "403 Forbidden",
        "Admin consent required",
        "権限がありません",
        "個人情報のみ取得可能です",
    ])
    def test_permission_limitations_are_warnings(self, message):
        assert classify_severity(message) == ErrorSeverity.WARNING

    def test_other_failures_are_errors(self):
        assert classify_severity("Connection reset by peer") == ErrorSeverity.ERROR


class TestFetchObservations:

    def test_no_adapters(self):
        observations, errors = asyncio.run(fetch_observations(AggregationContext()))
        assert observations == []
        assert errors == []

    def test_one_failure_does_not_abort_cycle(self, make_observation):
        ok = StaticSourceAdapter("slack", [make_observation(email="a@x.com")])
        context = AggregationContext(adapters=[ok, FailingAdapter("teams", AdapterFetchError("teams", "boom"))])

        observations, errors = asyncio.run(fetch_observations(context))

        assert len(observations) == 1
        assert errors == [FetchError(source="teams", message="boom", severity=ErrorSeverity.ERROR)]

    def test_permission_failure_downgraded(self):
        adapter = FailingAdapter("google", AdapterFetchError("google", "Insufficient permission: admin only"))
        _, errors = asyncio.run(fetch_observations(AggregationContext(adapters=[adapter])))
        assert errors[0].severity == ErrorSeverity.WARNING

    def test_unexpected_exception_collected(self):
        adapter = FailingAdapter("discord", RuntimeError("unexpected"))
        _, errors = asyncio.run(fetch_observations(AggregationContext(adapters=[adapter])))
        assert errors[0].source == "discord"
        assert errors[0].message == "unexpected"
        assert errors[0].severity == ErrorSeverity.ERROR

    def test_timeout_collected(self):
        context = AggregationContext(adapters=[SlowAdapter("chatwork")], timeout_seconds=0.05)
        _, errors = asyncio.run(fetch_observations(context))
        assert errors[0].source == "chatwork"
        assert errors[0].message.startswith("Timed out")

    def test_adapters_run_concurrently(self):
        state = {"active": 0, "max": 0}
        context = AggregationContext(adapters=[TrackingAdapter(f"s{i}", state) for i in range(3)])
        asyncio.run(fetch_observations(context))
        assert state["max"] == 3

    def test_credentials_passed_per_source(self):
        context = AggregationContext(
            adapters=[CredentialAdapter("slack"), CredentialAdapter("teams")],
            credentials={"slack": {"token": "secret"}},
        )
        _, errors = asyncio.run(fetch_observations(context))
        assert [e.source for e in errors] == ["teams"]

    def test_source_order_follows_adapters(self):
        context = AggregationContext(adapters=[StaticSourceAdapter("b", []), StaticSourceAdapter("a", [])])
        assert context.source_order == ["b", "a"]


class TestAggregate:

    def test_empty_input(self):
        result = aggregate([])

        assert result.persons == []
        assert result.team_health.total_members == 0
        assert result.team_health.health_score == 0
        assert result.team_health.generated_at is None
        assert result.risk_analysis.summary.total == 0
        assert result.risk_analysis.summary.isolated == 0
        assert result.risk_analysis.recommendations == []
        assert result.errors == []

    def test_idempotent(self, scenario_observations):
        first = aggregate(scenario_observations, source_order=["slack", "google", "teams"])
        second = aggregate(scenario_observations, source_order=["slack", "google", "teams"])
        assert first.model_dump_json() == second.model_dump_json()

    def test_input_order_irrelevant(self, scenario_observations):
        order = ["slack", "google", "teams"]
        expected = aggregate(scenario_observations, source_order=order).model_dump_json()
        for ordering in permutations(scenario_observations):
            assert aggregate(list(ordering), source_order=order).model_dump_json() == expected

    def test_scenario(self, scenario_observations, reference_time):
        result = aggregate(scenario_observations, organization_id="acme")
        people = {p.person_key: p for p in result.persons}

        assert set(people) == {"alice@example.com", "bob@example.com", "teams:T9"}
        assert people["alice@example.com"].isolation_risk == IsolationRisk.LOW
        assert result.team_health.organization_id == "acme"
        assert result.team_health.total_members == 3
        assert result.team_health.generated_at == reference_time
        assert result.risk_analysis.summary.isolated == 1

    def test_reference_time_defaults_to_latest_observation(self, make_observation, reference_time):
        observations = [
            make_observation(email="a@x.com", observed_at=reference_time - timedelta(days=3)),
            make_observation(email="b@x.com", observed_at=reference_time),
        ]
        assert aggregate(observations).team_health.generated_at == reference_time

    def test_unscored_observations_are_scored(self, make_observation):
        result = aggregate([make_observation(source_type="chatwork", email="a@x.com")])
        assert result.persons[0].activity_score == 50
        assert result.persons[0].communication_score == 50

    def test_fetch_errors_passed_through(self):
        errors = [FetchError(source="slack", message="scope missing", severity=ErrorSeverity.WARNING)]
        result = aggregate([], fetch_errors=errors)
        assert result.errors == errors
        assert result.has_errors

    def test_locale(self, scenario_observations):
        result = aggregate(scenario_observations, locale="ja")
        assert result.risk_analysis.locale == "ja"
        assert "1on1" in result.risk_analysis.recommendations[0].message


class TestCycleRunner:

    @pytest.fixture
    def store(self, tmp_path):
        store = SnapshotStore(cache_path=str(tmp_path / "snapshots"))
        yield store
        store.close()

    def test_run_stores_snapshot(self, store, scenario_observations):
        runner = CycleRunner(store=store)
        context = AggregationContext(
            organization_id="acme",
            adapters=[
                StaticSourceAdapter("slack", [o for o in scenario_observations if o.source_id == "slack"]),
                StaticSourceAdapter("google", [o for o in scenario_observations if o.source_id == "google"]),
                FailingAdapter("teams", AdapterFetchError("teams", "Forbidden")),
            ],
        )

        result = asyncio.run(runner.run(context))

        assert result.team_health.total_members == 2
        assert result.errors[0].severity == ErrorSeverity.WARNING

        entry = store.load("acme")
        assert entry is not None
        assert entry.snapshot == result.team_health
        assert entry.error_count == 1
        assert store.organizations() == ["acme"]

    def test_same_organization_serialized(self):
        state = {"active": 0, "max": 0}
        runner = CycleRunner()
        context = AggregationContext(organization_id="acme", adapters=[TrackingAdapter("slack", state)])

        async def run_twice():
            await asyncio.gather(runner.run(context), runner.run(context))

        asyncio.run(run_twice())
        assert state["max"] == 1

    def test_different_organizations_run_in_parallel(self):
        state = {"active": 0, "max": 0}
        runner = CycleRunner()
        first = AggregationContext(organization_id="acme", adapters=[TrackingAdapter("slack", state)])
        second = AggregationContext(organization_id="globex", adapters=[TrackingAdapter("slack", state)])

        async def run_both():
            await asyncio.gather(runner.run(first), runner.run(second))

        asyncio.run(run_both())
        assert state["max"] == 2

    def test_locks_released_after_cycles(self):
        state = {"active": 0, "max": 0}
        runner = CycleRunner()
        context = AggregationContext(organization_id="acme", adapters=[TrackingAdapter("slack", state)])

        async def run_twice():
            await asyncio.gather(runner.run(context), runner.run(context))

        asyncio.run(run_twice())
        assert runner._locks == {}
        assert runner._waiting == {}
