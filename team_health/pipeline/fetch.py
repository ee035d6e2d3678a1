"""
Source Adapter Fan-in

Fetches observations from every connected source concurrently and collects
whatever succeeded. One adapter failing, timing out or being cancelled never
aborts the cycle; it becomes an entry in the error list instead.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from team_health.models.entities import ServiceObservation
from team_health.utils.config import FetchConfig

logger = logging.getLogger(__name__)


class AdapterFetchError(Exception):
    """A recoverable failure scoped to one source."""

    def __init__(self, source: str, message: str):
        super().__init__(message)
        self.source = source
        self.message = message


class ErrorSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"


class FetchError(BaseModel):
    """A per-source failure reported alongside the aggregate."""
    source: str
    message: str
    severity: ErrorSeverity = ErrorSeverity.ERROR


class SourceAdapter(ABC):
    """Abstract base class for source adapters.

    Implementations turn one platform's data into normalized
    ServiceObservation records.
    """

    def __init__(self, source_id: str, source_type: str = "generic"):
        self.source_id = source_id
        self.source_type = source_type

    @abstractmethod
    async def fetch(self, credentials: Optional[dict[str, Any]] = None) -> list[ServiceObservation]:
        """Fetch observations for the current cycle.

        Args:
            credentials: Source-specific credentials (tokens, keys)

        Returns:
            Observations produced by this source

        Raises:
            AdapterFetchError: On any recoverable failure
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(source_id={self.source_id!r}, source_type={self.source_type!r})"


class AggregationContext(BaseModel):
    """Everything one aggregation cycle needs, passed explicitly."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    organization_id: str = "default"
    adapters: list[SourceAdapter] = Field(default_factory=list)
    credentials: dict[str, dict[str, Any]] = Field(default_factory=dict)
    timeout_seconds: float = 30.0

    @property
    def source_order(self) -> list[str]:
        """Adapter order used for position-sensitive identity fields."""
        return [adapter.source_id for adapter in self.adapters]

    def credentials_for(self, source_id: str) -> Optional[dict[str, Any]]:
        return self.credentials.get(source_id)


def classify_severity(message: str, markers: Optional[list[str]] = None) -> ErrorSeverity:
    """Permission or scope limitations are warnings; anything else is an error."""
    markers = markers if markers is not None else FetchConfig().permission_markers
    lowered = message.lower()
    if any(marker.lower() in lowered for marker in markers):
        return ErrorSeverity.WARNING
    return ErrorSeverity.ERROR


def _describe_failure(error: BaseException, timeout_seconds: float) -> str:
    if isinstance(error, asyncio.TimeoutError):
        return f"Timed out after {timeout_seconds:g}s"
    if isinstance(error, asyncio.CancelledError):
        return "Fetch was cancelled"
    if isinstance(error, AdapterFetchError):
        return error.message
    return str(error) or type(error).__name__


async def _fetch_one(
    adapter: SourceAdapter,
    context: AggregationContext,
) -> list[ServiceObservation]:
    credentials = context.credentials_for(adapter.source_id)
    observations = await asyncio.wait_for(
        adapter.fetch(credentials),
        timeout=context.timeout_seconds,
    )
    return list(observations or [])


async def fetch_observations(
    context: AggregationContext,
    config: Optional[FetchConfig] = None,
) -> tuple[list[ServiceObservation], list[FetchError]]:
    """Run every adapter concurrently and collect results best-effort.

    Args:
        context: Adapters, credentials and timeout for this cycle
        config: Fetch configuration (permission markers)

    Returns:
        Tuple of (all observations, per-source errors)
    """
    config = config or FetchConfig()

    if not context.adapters:
        logger.info("No source adapters configured")
        return [], []

    logger.info(f"Fetching from {len(context.adapters)} sources: {', '.join(context.source_order)}")

    results = await asyncio.gather(
        *(_fetch_one(adapter, context) for adapter in context.adapters),
        return_exceptions=True,
    )

    observations: list[ServiceObservation] = []
    errors: list[FetchError] = []

    for adapter, result in zip(context.adapters, results):
        if isinstance(result, BaseException):
            message = _describe_failure(result, context.timeout_seconds)
            severity = classify_severity(message, config.permission_markers)
            errors.append(FetchError(source=adapter.source_id, message=message, severity=severity))
            if severity == ErrorSeverity.WARNING:
                logger.warning(f"{adapter.source_id}: partial access, continuing: {message}")
            else:
                logger.error(f"{adapter.source_id}: fetch failed: {message}")
            continue

        observations.extend(result)
        logger.info(f"{adapter.source_id}: {len(result)} observations")

    return observations, errors
