"""
Tests for Snapshot Store, Report Outputs and CLI
"""

import json
import pytest
from datetime import datetime, timezone

import pandas as pd
from click.testing import CliRunner

from team_health.main import cli
from team_health.models.entities import TeamHealthSnapshot
from team_health.models.insights import RiskInsightGenerator, RiskSummary
from team_health.pipeline.aggregate import aggregate
from team_health.pipeline.outputs import OutputGenerator, generate_outputs
from team_health.utils.cache import SnapshotStore


class TestSnapshotStore:

    @pytest.fixture
    def store(self, tmp_path):
        store = SnapshotStore(cache_path=str(tmp_path / "snapshots"), ttl_days=30)
        yield store
        store.close()

    @pytest.fixture
    def snapshot(self):
        return TeamHealthSnapshot(
            organization_id="acme",
            generated_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
            total_members=4,
            health_score=72,
        )

    def test_save_and_load(self, store, snapshot):
        store.save("acme", snapshot, summary=RiskSummary(total=4, isolated=1), error_count=2)
        entry = store.load("acme")

        assert entry.snapshot == snapshot
        assert entry.summary.isolated == 1
        assert entry.error_count == 2

    def test_latest_write_wins(self, store, snapshot):
        store.save("acme", snapshot)
        store.save("acme", snapshot.model_copy(update={"health_score": 90}))
        assert store.load("acme").snapshot.health_score == 90
        assert store.stats()["count"] == 1

    def test_missing_organization(self, store):
        assert store.load("nobody") is None

    def test_expired_entry_dropped(self, tmp_path, snapshot):
        store = SnapshotStore(cache_path=str(tmp_path / "expired"), ttl_days=-1)
        try:
            store.save("acme", snapshot)
            assert store.load("acme") is None
            assert store.organizations() == []
        finally:
            store.close()

    def test_invalidate_and_clear(self, store, snapshot):
        store.save("acme", snapshot)
        store.save("globex", snapshot)
        assert store.organizations() == ["acme", "globex"]

        assert store.invalidate("acme") is True
        assert store.invalidate("acme") is False
        store.clear()
        assert store.organizations() == []

    def test_disabled_store(self, snapshot):
        store = SnapshotStore(enabled=False)
        assert store.save("acme", snapshot) is None
        assert store.load("acme") is None
        assert store.stats() == {"enabled": False}


class TestOutputGenerator:

    @pytest.fixture
    def result(self, scenario_observations):
        return aggregate(scenario_observations, organization_id="acme")

    def test_generates_all_formats(self, tmp_path, result):
        files = generate_outputs(result, output_dir=tmp_path, timestamp_filenames=False)

        assert files["people"]["csv"] == tmp_path / "people.csv"
        assert files["team_health"]["markdown"] == tmp_path / "team_health.md"
        assert files["team_health"]["json"] == tmp_path / "team_health.json"
        for paths in files.values():
            for path in paths.values():
                assert path.exists()

    def test_people_csv_highest_risk_first(self, tmp_path, result):
        files = generate_outputs(result, output_dir=tmp_path, formats=["csv"], timestamp_filenames=False)
        df = pd.read_csv(files["people"]["csv"])

        assert len(df) == 3
        assert df.iloc[0]["isolation_risk"] == "high"
        assert df.iloc[-1]["person_key"] == "alice@example.com"

    def test_redacted_fields_omitted(self, tmp_path, result):
        files = generate_outputs(
            result,
            output_dir=tmp_path,
            formats=["csv", "json"],
            timestamp_filenames=False,
            redact_fields=["email"],
        )
        df = pd.read_csv(files["people"]["csv"])
        data = json.loads(files["team_health"]["json"].read_text(encoding="utf-8"))

        assert "email" not in df.columns
        assert all("email" not in person for person in data["persons"])
        assert data["team_health"]["total_members"] == 3

    def test_redacted_email_leaks_nowhere(self, tmp_path, make_observation):
        result = aggregate([
            make_observation(email="Secret@Corp.com", activity_score=20, communication_score=20,
                             relationship_strength=10),
        ])
        generator = OutputGenerator(output_dir=tmp_path, timestamp_filenames=False, redact_fields=["email"])
        files = {**generator.generate_people(result), **generator.generate_team_health(result)}

        for path in files.values():
            text = path.read_text(encoding="utf-8").lower()
            assert "secret@corp.com" not in text

        data = json.loads(files["json"].read_text(encoding="utf-8"))
        alias = data["persons"][0]["person_key"]
        assert alias.startswith("anon:")
        assert data["risk_analysis"]["recommendations"][0]["target_keys"] == [alias]
        assert data["risk_analysis"]["critical_insights"][0]["affected_keys"] == [alias]

    def test_keys_kept_without_email_redaction(self, tmp_path, result):
        generator = OutputGenerator(output_dir=tmp_path, formats=["csv"], timestamp_filenames=False)
        df = pd.read_csv(generator.generate_people(result)["csv"])
        assert "alice@example.com" in set(df["person_key"])

    def test_markdown_options(self, tmp_path, make_person):
        people = [
            make_person("a@x.com", activity=20, communication=20, strength=10),
            make_person("b@x.com", activity=65, communication=65, strength=30),
        ]
        result = aggregate([])
        result.risk_analysis = RiskInsightGenerator().generate(people)
        files = generate_outputs(
            result,
            output_dir=tmp_path,
            formats=["markdown"],
            timestamp_filenames=False,
            max_items_per_section=1,
            include_methodology=False,
        )
        content = files["team_health"]["markdown"].read_text(encoding="utf-8")

        assert "## Methodology" not in content
        assert "1. **critical**" in content
        assert "2. **" not in content

    def test_markdown_report(self, tmp_path, result):
        generator = OutputGenerator(output_dir=tmp_path, formats=["markdown"], timestamp_filenames=False)
        path = generator.generate_team_health(result)["markdown"]
        content = path.read_text(encoding="utf-8")

        assert content.startswith("# Team Health Report")
        assert f"**Health score**: {result.team_health.health_score}/100" in content
        assert "## Recommendations" in content

    def test_empty_result_report(self, tmp_path):
        generator = OutputGenerator(output_dir=tmp_path, timestamp_filenames=False)
        path = generator.generate_team_health(aggregate([]))["markdown"]
        assert "No recommendations this cycle" in path.read_text(encoding="utf-8")


class TestCli:

    def test_version(self):
        result = CliRunner().invoke(cli, ["version"], obj={})
        assert result.exit_code == 0
        assert "Team Health Intelligence v" in result.output

    def test_aggregate(self, tmp_path, fixtures_dir):
        output_dir = tmp_path / "reports"
        result = CliRunner().invoke(
            cli,
            [
                "--quiet",
                "aggregate",
                "--input", str(fixtures_dir / "observations"),
                "--output", str(output_dir),
                "--no-store",
            ],
            obj={},
        )

        assert result.exit_code == 0, result.output
        assert "Health score" in result.output
        assert any(output_dir.glob("people*.csv"))
        assert any(output_dir.glob("team_health*.json"))

    def test_stats(self, fixtures_dir):
        result = CliRunner().invoke(cli, ["stats", "--input", str(fixtures_dir / "observations")], obj={})
        assert result.exit_code == 0, result.output
        assert "Distinct people" in result.output
