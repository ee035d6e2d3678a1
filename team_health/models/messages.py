"""
Insight Message Templates

Renders prose for the structured facts produced by RiskInsightGenerator.
"""

import logging

from team_health.models.insights import (
    Recommendation,
    RiskAnalysisReport,
    RiskInsight,
)

logger = logging.getLogger(__name__)

DEFAULT_LOCALE = "en"
MAX_NAMES_IN_MESSAGE = 5

RECOMMENDATION_TEMPLATES = {
    "en": {
        "immediate_one_on_one": "Hold a 1:1 within 48 hours with {count} isolated member(s): {names}",
        "reconnect_close_relationship": "Reach out personally to {count} close friend(s) showing low activity: {names}",
        "team_reintegration": "Re-involve {count} teammate(s) in team work and stand-ups: {names}",
        "activity_check_in": "Check in with {count} member(s) whose activity has dropped: {names}",
        "maintain_contact_rhythm": "Keep a regular contact rhythm with {count} frequent contact(s): {names}",
        "increase_communication": "Create more opportunities to communicate for {count} member(s): {names}",
        "relationship_building": "Invest in relationship building over the next month with {count} member(s): {names}",
    },
    "ja": {
        "immediate_one_on_one": "48時間以内に孤立しているメンバー{count}名と1on1を実施してください: {names}",
        "reconnect_close_relationship": "活動が低下している親しいメンバー{count}名に個別に声をかけてください: {names}",
        "team_reintegration": "チームメイト{count}名をチーム活動に巻き込んでください: {names}",
        "activity_check_in": "活動量が低下しているメンバー{count}名の状況を確認してください: {names}",
        "maintain_contact_rhythm": "頻繁に連絡を取るメンバー{count}名との定期的な接点を維持してください: {names}",
        "increase_communication": "メンバー{count}名のコミュニケーション機会を増やしてください: {names}",
        "relationship_building": "今後1か月でメンバー{count}名との関係構築に取り組んでください: {names}",
    },
}

INSIGHT_TEMPLATES = {
    "en": {
        ("isolation_rate", "warning"): "{count} member(s) ({rate}%) are isolated and need attention",
        ("source_concentration", "warning"): "{rate}% of the {total} members on {source} are at high isolation risk",
        ("relationship_diversity", "warning"): "Only {count} relationship type(s) present; relationships lack diversity",
        ("strong_relationship_rate", "success"): "{rate}% of members have strong relationships",
        ("strong_relationship_rate", "warning"): "Only {rate}% of members have strong relationships",
    },
    "ja": {
        ("isolation_rate", "warning"): "{count}名（{rate}%）のメンバーが孤立しており、対応が必要です",
        ("source_concentration", "warning"): "{source}のメンバー{total}名のうち{rate}%が高い孤立リスクにあります",
        ("relationship_diversity", "warning"): "関係性の種類が{count}種類のみで、多様性が不足しています",
        ("strong_relationship_rate", "success"): "{rate}%のメンバーが強い関係性を持っています",
        ("strong_relationship_rate", "warning"): "強い関係性を持つメンバーは{rate}%にとどまります",
    },
}


def _format_names(names: list[str]) -> str:
    shown = names[:MAX_NAMES_IN_MESSAGE]
    hidden = len(names) - len(shown)
    text = ", ".join(shown)
    if hidden > 0:
        text += f" (+{hidden})"
    return text


def render_recommendation(recommendation: Recommendation, locale: str = DEFAULT_LOCALE) -> str:
    templates = RECOMMENDATION_TEMPLATES.get(locale, RECOMMENDATION_TEMPLATES[DEFAULT_LOCALE])
    template = templates.get(recommendation.action)
    if template is None:
        return recommendation.action
    return template.format(
        count=recommendation.count,
        names=_format_names(recommendation.target_names),
    )


def render_insight(insight: RiskInsight, locale: str = DEFAULT_LOCALE) -> str:
    templates = INSIGHT_TEMPLATES.get(locale, INSIGHT_TEMPLATES[DEFAULT_LOCALE])
    template = templates.get((insight.category.value, insight.severity.value))
    if template is None:
        return insight.category.value
    return template.format(
        count=insight.count,
        total=insight.total,
        rate=insight.rate,
        source=insight.source or "",
    )


def render_messages(report: RiskAnalysisReport, locale: str = DEFAULT_LOCALE) -> RiskAnalysisReport:
    """Return a copy of the report with every message rendered for `locale`.

    Unknown locales fall back to English.
    """
    if locale not in RECOMMENDATION_TEMPLATES:
        logger.warning(f"No message templates for locale '{locale}', using {DEFAULT_LOCALE}")
        locale = DEFAULT_LOCALE

    recommendations = [
        r.model_copy(update={"message": render_recommendation(r, locale)})
        for r in report.recommendations
    ]
    insights = [
        i.model_copy(update={"message": render_insight(i, locale)})
        for i in report.critical_insights
    ]

    return report.model_copy(update={
        "recommendations": recommendations,
        "critical_insights": insights,
        "locale": locale,
    })
