"""
Pytest Configuration and Shared Fixtures
"""

import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Optional

from team_health.models.entities import (
    InteractionCounts,
    ProfileSignals,
    RelationshipType,
    ServiceObservation,
    UnifiedPerson,
)

REFERENCE_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def reference_time() -> datetime:
    """Fixed cycle time used across tests."""
    return REFERENCE_TIME


@pytest.fixture
def make_observation() -> Callable[..., ServiceObservation]:
    """Factory for observations observed at the shared reference time."""

    def _make(
        source_id: str = "slack",
        local_id: str = "U001",
        email: Optional[str] = None,
        display_name: str = "",
        source_type: Optional[str] = None,
        days_since_activity: Optional[float] = None,
        **kwargs,
    ) -> ServiceObservation:
        if days_since_activity is not None:
            kwargs.setdefault("last_activity", REFERENCE_TIME - timedelta(days=days_since_activity))
        kwargs.setdefault("observed_at", REFERENCE_TIME)
        return ServiceObservation(
            source_id=source_id,
            source_type=source_type or source_id,
            local_id=local_id,
            email=email,
            display_name=display_name,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_person() -> Callable[..., UnifiedPerson]:
    """Factory for already-merged people."""

    def _make(
        person_key: str,
        activity: int = 90,
        communication: int = 90,
        relationship_type: RelationshipType = RelationshipType.CONTACT,
        strength: int = 60,
        sources: Optional[list[str]] = None,
        is_active: bool = True,
        display_name: Optional[str] = None,
    ) -> UnifiedPerson:
        return UnifiedPerson(
            person_key=person_key,
            display_name=display_name if display_name is not None else person_key.split("@")[0].title(),
            source_list=sources or ["slack"],
            activity_score=activity,
            communication_score=communication,
            relationship_type=relationship_type,
            relationship_strength=strength,
            is_active=is_active,
        )

    return _make


@pytest.fixture
def full_profile() -> ProfileSignals:
    """Profile with every completeness signal present."""
    return ProfileSignals(
        has_real_name=True,
        has_email=True,
        has_avatar=True,
        has_department=True,
        has_title=True,
        has_location=True,
        has_handle=True,
        has_nickname=True,
        two_factor_enforced=True,
        role_count=3,
    )


@pytest.fixture
def busy_interactions() -> InteractionCounts:
    """Interaction counts that saturate every channel."""
    return InteractionCounts(
        direct_message=40,
        group=40,
        meeting=10,
        email=40,
        file_share=20,
    )


@pytest.fixture
def scenario_observations(make_observation) -> list[ServiceObservation]:
    """Alice on two sources with diverging scores, Bob on one, Carol without email."""
    return [
        make_observation(
            source_id="slack",
            local_id="U1",
            email="Alice@Example.com ",
            display_name="alice",
            activity_score=40,
            communication_score=40,
            relationship_type=RelationshipType.TEAMMATE,
            relationship_strength=30,
        ),
        make_observation(
            source_id="google",
            local_id="g-1",
            email="alice@example.com",
            display_name="Alice Anderson",
            activity_score=90,
            communication_score=85,
            relationship_type=RelationshipType.FRIEND,
            relationship_strength=75,
        ),
        make_observation(
            source_id="slack",
            local_id="U2",
            email="bob@example.com",
            display_name="Bob",
            activity_score=70,
            communication_score=60,
            relationship_type=RelationshipType.FREQUENT_CONTACT,
            relationship_strength=55,
        ),
        make_observation(
            source_id="teams",
            local_id="T9",
            display_name="Carol",
            activity_score=30,
            communication_score=35,
            relationship_strength=20,
        ),
    ]


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to test fixtures directory."""
    return Path(__file__).parent / "fixtures"
