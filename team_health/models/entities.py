"""
Core Data Models

Pydantic models for per-source observations, merged identities and
organization-level snapshots.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, computed_field, field_validator


class RelationshipType(str, Enum):
    """Closeness classification, totally ordered for merge conflicts."""
    SELF = "self"
    FRIEND = "friend"
    FREQUENT_CONTACT = "frequent_contact"
    TEAMMATE = "teammate"
    CONTACT = "contact"

    @property
    def rank(self) -> int:
        """Higher rank wins when two sources disagree."""
        return RELATIONSHIP_RANK[self]


RELATIONSHIP_RANK = {
    RelationshipType.SELF: 4,
    RelationshipType.FRIEND: 3,
    RelationshipType.FREQUENT_CONTACT: 2,
    RelationshipType.TEAMMATE: 1,
    RelationshipType.CONTACT: 0,
}


class IsolationRisk(str, Enum):
    """Coarse isolation-risk tier."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def severity(self) -> int:
        return RISK_SEVERITY[self]


RISK_SEVERITY = {
    IsolationRisk.LOW: 0,
    IsolationRisk.MEDIUM: 1,
    IsolationRisk.HIGH: 2,
}


class ChannelKind(str, Enum):
    """Interaction channel kinds counted per observation."""
    DIRECT_MESSAGE = "direct_message"
    GROUP = "group"
    MEETING = "meeting"
    EMAIL = "email"
    FILE_SHARE = "file_share"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps as UTC so they compare with aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clamp_score(value: float) -> int:
    """Clamp a score into the 0-100 range."""
    return int(min(100, max(0, value)))


class InteractionCounts(BaseModel):
    """Interaction volume per channel kind."""
    direct_message: int = Field(default=0, ge=0)
    group: int = Field(default=0, ge=0)
    meeting: int = Field(default=0, ge=0)
    email: int = Field(default=0, ge=0)
    file_share: int = Field(default=0, ge=0)

    def get(self, kind: ChannelKind) -> int:
        return getattr(self, kind.value)

    def active_channels(self) -> list[ChannelKind]:
        """Channel kinds with at least one interaction."""
        return [kind for kind in ChannelKind if self.get(kind) > 0]

    @property
    def total(self) -> int:
        return sum(self.get(kind) for kind in ChannelKind)

    def __add__(self, other: "InteractionCounts") -> "InteractionCounts":
        return InteractionCounts(**{
            kind.value: self.get(kind) + other.get(kind) for kind in ChannelKind
        })


class ProfileSignals(BaseModel):
    """Profile-completeness and account-state signals reported by a source.

    Every field is optional; strategies only award bonuses for signals
    the source actually reports.
    """
    has_real_name: bool = False
    has_email: bool = False
    has_avatar: bool = False
    has_department: bool = False
    has_title: bool = False
    has_location: bool = False
    has_handle: bool = False
    has_nickname: bool = False
    account_enabled: bool = True
    is_restricted: bool = False
    is_guest: bool = False
    is_admin: bool = False
    two_factor_enforced: bool = False
    role_count: int = Field(default=0, ge=0)


class ServiceObservation(BaseModel):
    """One source's view of one person in one aggregation cycle."""
    source_id: str = Field(description="Adapter instance that produced this record")
    source_type: str = Field(default="generic", description="Platform kind, selects scoring strategy")
    local_id: str = Field(description="Platform-local identifier")
    email: Optional[str] = None
    display_name: str = ""
    avatar_url: Optional[str] = None

    profile: ProfileSignals = Field(default_factory=ProfileSignals)
    last_activity: Optional[datetime] = None
    joined_at: Optional[datetime] = None
    is_active: bool = True
    interactions: InteractionCounts = Field(default_factory=InteractionCounts)

    # Filled by the scoring engine unless the adapter supplied them
    activity_score: Optional[int] = Field(default=None, ge=0, le=100)
    communication_score: Optional[int] = Field(default=None, ge=0, le=100)

    relationship_type: RelationshipType = RelationshipType.CONTACT
    relationship_strength: int = Field(default=0, ge=0, le=100)
    metadata: dict[str, Any] = Field(default_factory=dict)
    observed_at: datetime = Field(default_factory=_utcnow)

    @field_validator("last_activity", "joined_at", "observed_at")
    @classmethod
    def _normalize_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @field_validator("email")
    @classmethod
    def _blank_email_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()

    @property
    def person_key(self) -> str:
        """Stable identity: normalized email, else source-scoped local id."""
        if self.email:
            return self.email.strip().lower()
        return f"{self.source_id}:{self.local_id}"

    @property
    def is_scored(self) -> bool:
        return self.activity_score is not None and self.communication_score is not None

    @property
    def isolation_risk(self) -> Optional[IsolationRisk]:
        """Risk tier for this single observation, once scored."""
        if not self.is_scored:
            return None
        from team_health.models.risk import classify_isolation_risk
        return classify_isolation_risk(self.activity_score, self.communication_score)


class UnifiedPerson(BaseModel):
    """The merged identity of one person across all contributing sources."""
    person_key: str
    display_name: str = ""
    email: Optional[str] = None
    avatar_url: Optional[str] = None
    source_list: list[str] = Field(default_factory=list)

    activity_score: int = Field(default=0, ge=0, le=100)
    communication_score: int = Field(default=0, ge=0, le=100)
    worst_source_risk: IsolationRisk = IsolationRisk.LOW

    relationship_type: RelationshipType = RelationshipType.CONTACT
    relationship_strength: int = Field(default=0, ge=0, le=100)

    is_active: bool = False
    last_activity: Optional[datetime] = None
    interactions: InteractionCounts = Field(default_factory=InteractionCounts)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @computed_field
    @property
    def isolation_risk(self) -> IsolationRisk:
        """Always derived from the current score pair."""
        from team_health.models.risk import classify_isolation_risk
        return classify_isolation_risk(self.activity_score, self.communication_score)

    @property
    def average_score(self) -> float:
        return (self.activity_score + self.communication_score) / 2


class TeamHealthSnapshot(BaseModel):
    """Organization-level statistics for one aggregation cycle."""
    organization_id: Optional[str] = None
    generated_at: Optional[datetime] = None

    total_members: int = 0
    active_members: int = 0
    health_score: int = Field(default=0, ge=0, le=100)

    isolation_risks: dict[str, int] = Field(
        default_factory=lambda: {risk.value: 0 for risk in IsolationRisk}
    )
    # Non-disjoint: a person counts once for every source it appears in
    service_participation: dict[str, int] = Field(default_factory=dict)
    relationship_distribution: dict[str, int] = Field(
        default_factory=lambda: {rel.value: 0 for rel in RelationshipType}
    )

    # Score breakdown
    base_score: int = 0
    diversity_bonus: int = 0
    strong_relationship_bonus: int = 0
