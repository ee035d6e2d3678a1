"""
Snapshot Store

Keeps the latest team health snapshot per organization using diskcache.
"""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

import diskcache
from pydantic import BaseModel, Field

from team_health.models.entities import TeamHealthSnapshot
from team_health.models.insights import RiskSummary

logger = logging.getLogger(__name__)

KEY_PREFIX = "snapshot:"


class SnapshotEntry(BaseModel):
    """A stored cycle result."""
    organization_id: str
    snapshot: TeamHealthSnapshot
    summary: RiskSummary = Field(default_factory=RiskSummary)
    error_count: int = 0
    stored_at: datetime
    expires_at: datetime


class SnapshotStore:
    """Latest-snapshot-per-organization store.

    Writes for one organization are serialized by the cycle runner; the
    store itself only guarantees that each write replaces the entry whole.
    """

    def __init__(
        self,
        cache_path: str = ".cache/snapshots",
        ttl_days: int = 30,
        max_size_mb: int = 50,
        enabled: bool = True,
    ):
        """Initialize store.

        Args:
            cache_path: Directory of the diskcache database
            ttl_days: Time-to-live for stored snapshots
            max_size_mb: Maximum store size in MB (0 = unlimited)
            enabled: Whether snapshots are persisted at all
        """
        self.enabled = enabled
        self.ttl_days = ttl_days
        self.cache_path = Path(cache_path)
        self.max_size_bytes = max_size_mb * 1024 * 1024 if max_size_mb > 0 else None

        self._cache: Optional[diskcache.Cache] = None

        if self.enabled:
            self._init_cache()

    def _init_cache(self) -> None:
        self.cache_path.mkdir(parents=True, exist_ok=True)

        kwargs = {}
        if self.max_size_bytes is not None:
            kwargs["size_limit"] = self.max_size_bytes

        self._cache = diskcache.Cache(str(self.cache_path), **kwargs)
        logger.debug(f"Snapshot store initialized at {self.cache_path}")

    @staticmethod
    def _key(organization_id: str) -> str:
        return f"{KEY_PREFIX}{organization_id}"

    def save(
        self,
        organization_id: str,
        snapshot: TeamHealthSnapshot,
        summary: Optional[RiskSummary] = None,
        error_count: int = 0,
    ) -> Optional[SnapshotEntry]:
        """Store the latest snapshot for an organization.

        Returns:
            The stored entry, or None when the store is disabled
        """
        if not self.enabled or self._cache is None:
            return None

        now = datetime.now(timezone.utc)
        entry = SnapshotEntry(
            organization_id=organization_id,
            snapshot=snapshot,
            summary=summary or RiskSummary(),
            error_count=error_count,
            stored_at=now,
            expires_at=now + timedelta(days=self.ttl_days),
        )

        try:
            self._cache.set(self._key(organization_id), entry.model_dump_json())
            logger.debug(f"Stored snapshot for {organization_id}")
        except diskcache.Timeout as e:
            logger.warning(f"Snapshot write error: {e}")
            return None

        return entry

    def load(self, organization_id: str) -> Optional[SnapshotEntry]:
        """Return the latest unexpired entry for an organization."""
        if not self.enabled or self._cache is None:
            return None

        key = self._key(organization_id)
        data = self._cache.get(key)
        if data is None:
            return None

        entry = SnapshotEntry.model_validate_json(data)

        if datetime.now(timezone.utc) > entry.expires_at:
            self._cache.delete(key)
            return None

        return entry

    def organizations(self) -> list[str]:
        """Organization ids with a stored snapshot."""
        if not self.enabled or self._cache is None:
            return []
        return sorted(
            str(key)[len(KEY_PREFIX):]
            for key in self._cache.iterkeys()
            if str(key).startswith(KEY_PREFIX)
        )

    def invalidate(self, organization_id: str) -> bool:
        """Remove an organization's snapshot.

        Returns:
            True if an entry was removed, False if not found
        """
        if not self.enabled or self._cache is None:
            return False
        return self._cache.delete(self._key(organization_id))

    def clear(self) -> None:
        """Clear all stored snapshots."""
        if not self.enabled or self._cache is None:
            return
        self._cache.clear()
        logger.info("Snapshot store cleared")

    def stats(self) -> dict[str, Any]:
        """Get store statistics."""
        if not self.enabled or self._cache is None:
            return {"enabled": False}

        return {
            "enabled": True,
            "path": str(self.cache_path),
            "size_bytes": self._cache.volume(),
            "count": len(self._cache),
            "ttl_days": self.ttl_days,
        }

    def close(self) -> None:
        """Close the store."""
        if self._cache is not None:
            self._cache.close()
            self._cache = None
