"""
Output Generation

Generates CSV, Markdown, and JSON reports from an aggregation result.
"""

import hashlib
import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import pandas as pd

from team_health.models.entities import UnifiedPerson

if TYPE_CHECKING:
    from team_health.pipeline.aggregate import AggregationResult

logger = logging.getLogger(__name__)

PEOPLE_COLUMNS = [
    "person_key",
    "display_name",
    "email",
    "sources",
    "activity_score",
    "communication_score",
    "isolation_risk",
    "worst_source_risk",
    "relationship_type",
    "relationship_strength",
    "is_active",
    "last_activity",
    "total_interactions",
]

RISK_ORDER = {"high": 0, "medium": 1, "low": 2}


def _pseudonymize(value: str) -> str:
    return "anon:" + hashlib.sha256(value.encode()).hexdigest()[:16]


class OutputGenerator:
    """Generates report files from one aggregation result."""

    def __init__(
        self,
        output_dir: str | Path = "./outputs",
        formats: Optional[list[str]] = None,
        timestamp_filenames: bool = True,
        max_items_per_section: int = 20,
        include_methodology: bool = True,
        redact_fields: Optional[list[str]] = None,
    ):
        """Initialize output generator.

        Args:
            output_dir: Directory for output files
            formats: List of formats to generate (csv, markdown, json)
            timestamp_filenames: Whether to include timestamp in filenames
            max_items_per_section: Maximum items per report section
            include_methodology: Whether to include methodology in reports
            redact_fields: Person fields left out of every report
        """
        self.output_dir = Path(output_dir)
        self.formats = formats or ["csv", "markdown", "json"]
        self.timestamp_filenames = timestamp_filenames
        self.max_items_per_section = max_items_per_section
        self.include_methodology = include_methodology
        self.redact_fields = set(redact_fields or [])

        # Create output directory
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _get_filename(self, base_name: str, extension: str) -> Path:
        """Generate output filename."""
        if self.timestamp_filenames:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            filename = f"{base_name}_{timestamp}.{extension}"
        else:
            filename = f"{base_name}.{extension}"
        return self.output_dir / filename

    def _redact(self, result: "AggregationResult") -> "AggregationResult":
        """Replace email-derived keys with stable pseudonyms when email is redacted."""
        if "email" not in self.redact_fields:
            return result

        aliases = {p.person_key: _pseudonymize(p.person_key) for p in result.persons if p.email}
        if not aliases:
            return result

        pattern = re.compile(
            "|".join(re.escape(key) for key in sorted(aliases, key=len, reverse=True)),
            re.IGNORECASE,
        )

        def scrub(text: str) -> str:
            return pattern.sub(lambda m: aliases[m.group(0).lower()], text)

        persons = [
            p.model_copy(update={
                "person_key": scrub(p.person_key),
                "display_name": scrub(p.display_name),
                "email": None,
            })
            for p in result.persons
        ]
        analysis = result.risk_analysis
        recommendations = [
            r.model_copy(update={
                "target_keys": [scrub(k) for k in r.target_keys],
                "target_names": [scrub(n) for n in r.target_names],
                "message": scrub(r.message),
            })
            for r in analysis.recommendations
        ]
        insights = [
            i.model_copy(update={
                "affected_keys": [scrub(k) for k in i.affected_keys],
                "message": scrub(i.message),
            })
            for i in analysis.critical_insights
        ]
        errors = [e.model_copy(update={"message": scrub(e.message)}) for e in result.errors]

        return result.model_copy(update={
            "persons": persons,
            "risk_analysis": analysis.model_copy(update={
                "recommendations": recommendations,
                "critical_insights": insights,
            }),
            "errors": errors,
        })

    def _person_row(self, person: UnifiedPerson) -> dict:
        row = {
            "person_key": person.person_key,
            "display_name": person.display_name,
            "email": person.email or "",
            "sources": ";".join(person.source_list),
            "activity_score": person.activity_score,
            "communication_score": person.communication_score,
            "isolation_risk": person.isolation_risk.value,
            "worst_source_risk": person.worst_source_risk.value,
            "relationship_type": person.relationship_type.value,
            "relationship_strength": person.relationship_strength,
            "is_active": person.is_active,
            "last_activity": person.last_activity.isoformat() if person.last_activity else "",
            "total_interactions": person.interactions.total,
        }
        for field in self.redact_fields:
            row.pop(field, None)
        return row

    def _people_to_csv(self, people: list[UnifiedPerson]) -> str:
        """Convert people to CSV format, highest risk first."""
        columns = [c for c in PEOPLE_COLUMNS if c not in self.redact_fields]
        ordered = sorted(
            people,
            key=lambda p: (RISK_ORDER[p.isolation_risk.value], p.average_score, p.person_key),
        )
        df = pd.DataFrame([self._person_row(p) for p in ordered], columns=columns)
        return df.to_csv(index=False)

    def _result_to_json(self, result: "AggregationResult") -> str:
        data = json.loads(result.model_dump_json())
        if self.redact_fields:
            for person in data["persons"]:
                for field in self.redact_fields:
                    person.pop(field, None)
        return json.dumps(data, indent=2, ensure_ascii=False)

    def _generate_team_health_md(self, result: "AggregationResult") -> str:
        """Generate team health markdown report."""
        health = result.team_health
        analysis = result.risk_analysis
        summary = analysis.summary

        generated = health.generated_at.strftime("%Y-%m-%d %H:%M") if health.generated_at else "N/A"
        lines = ["# Team Health Report\n"]

        lines.extend([
            f"*Organization: {health.organization_id or 'default'}*\n",
            f"*Generated: {generated}*\n",
            "\n## Overview\n",
            f"- **Health score**: {health.health_score}/100",
            f"- **Members**: {health.total_members} ({health.active_members} active)",
            f"- **Isolated**: {summary.isolated} ({summary.isolation_rate}%)",
            f"- **Strong relationships**: {summary.strong_relationship_rate}%\n",
        ])

        if self.include_methodology:
            lines.extend([
                "## Methodology\n",
                "Health score is the rounded mean activity score plus two bonuses:\n",
                f"- **Base score**: {health.base_score}",
                f"- **Relationship diversity bonus**: +{health.diversity_bonus}",
                f"- **Strong relationship bonus**: +{health.strong_relationship_bonus}\n",
                "Isolation risk is classified from the average of activity and "
                "communication scores (>= 80 low, >= 60 medium, otherwise high).\n",
            ])

        lines.extend([
            "\n## Isolation Risk\n",
            "| Tier | Members |",
            "|------|---------|",
        ])
        for tier in ("high", "medium", "low"):
            lines.append(f"| {tier} | {health.isolation_risks.get(tier, 0)} |")

        lines.extend([
            "\n## Relationship Breakdown\n",
            "| Type | Total | High | Medium | Low | Avg strength |",
            "|------|-------|------|--------|-----|--------------|",
        ])
        for rel_type, b in analysis.breakdown.items():
            if b.total == 0:
                continue
            lines.append(
                f"| {rel_type} | {b.total} | {b.high} | {b.medium} | {b.low} | {b.average_strength:.1f} |"
            )

        if health.service_participation:
            lines.extend([
                "\n## Service Participation\n",
                "| Source | Members |",
                "|--------|---------|",
            ])
            for source, count in health.service_participation.items():
                lines.append(f"| {source} | {count} |")

        if analysis.critical_insights:
            lines.append("\n## Critical Insights\n")
            for insight in analysis.critical_insights:
                flag = " **(action required)**" if insight.action_required else ""
                lines.append(f"- [{insight.severity.value}] {insight.message}{flag}")

        if analysis.recommendations:
            lines.append("\n## Recommendations\n")
            for i, rec in enumerate(analysis.recommendations[:self.max_items_per_section], 1):
                lines.append(
                    f"{i}. **{rec.priority.value}** ({rec.timeline.value}): {rec.message}"
                )
        else:
            lines.append("\n*No recommendations this cycle.*\n")

        if result.errors:
            lines.extend([
                "\n## Source Errors\n",
                "| Source | Severity | Message |",
                "|--------|----------|---------|",
            ])
            for error in result.errors:
                lines.append(f"| {error.source} | {error.severity.value} | {error.message} |")

        return "\n".join(lines)

    def generate_people(self, result: "AggregationResult") -> dict[str, Path]:
        """Generate the per-person table.

        Returns:
            Dictionary of format -> filepath
        """
        result = self._redact(result)
        generated = {}

        if "csv" in self.formats:
            filepath = self._get_filename("people", "csv")
            filepath.write_text(self._people_to_csv(result.persons), encoding="utf-8")
            generated["csv"] = filepath

        logger.info(f"Generated people reports: {list(generated.keys())}")
        return generated

    def generate_team_health(self, result: "AggregationResult") -> dict[str, Path]:
        """Generate team health reports."""
        result = self._redact(result)
        generated = {}

        if "markdown" in self.formats:
            filepath = self._get_filename("team_health", "md")
            filepath.write_text(self._generate_team_health_md(result), encoding="utf-8")
            generated["markdown"] = filepath

        if "json" in self.formats:
            filepath = self._get_filename("team_health", "json")
            filepath.write_text(self._result_to_json(result), encoding="utf-8")
            generated["json"] = filepath

        logger.info(f"Generated team health reports: {list(generated.keys())}")
        return generated


def generate_outputs(
    result: "AggregationResult",
    output_dir: str | Path = "./outputs",
    formats: Optional[list[str]] = None,
    timestamp_filenames: bool = True,
    max_items_per_section: int = 20,
    include_methodology: bool = True,
    redact_fields: Optional[list[str]] = None,
) -> dict[str, dict[str, Path]]:
    """Convenience function to generate all outputs.

    Returns:
        Dictionary of report_type -> format -> filepath
    """
    generator = OutputGenerator(
        output_dir=output_dir,
        formats=formats or ["csv", "markdown", "json"],
        timestamp_filenames=timestamp_filenames,
        max_items_per_section=max_items_per_section,
        include_methodology=include_methodology,
        redact_fields=redact_fields,
    )

    return {
        "people": generator.generate_people(result),
        "team_health": generator.generate_team_health(result),
    }
