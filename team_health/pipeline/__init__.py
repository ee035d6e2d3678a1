"""
Data Processing Pipeline

Components for fetching, resolving, aggregating, and outputting team data.
"""

from team_health.pipeline.fetch import (
    AdapterFetchError,
    AggregationContext,
    FetchError,
    SourceAdapter,
    fetch_observations,
)
from team_health.pipeline.ingest import (
    FileSourceAdapter,
    HttpSourceAdapter,
    StaticSourceAdapter,
)
from team_health.pipeline.resolve import (
    IdentityResolver,
    MergeInvariantViolation,
    resolve_identities,
)
from team_health.pipeline.aggregate import AggregationResult, CycleRunner, aggregate
from team_health.pipeline.outputs import generate_outputs, OutputGenerator

__all__ = [
    "AdapterFetchError",
    "AggregationContext",
    "FetchError",
    "SourceAdapter",
    "fetch_observations",
    "FileSourceAdapter",
    "HttpSourceAdapter",
    "StaticSourceAdapter",
    "IdentityResolver",
    "MergeInvariantViolation",
    "resolve_identities",
    "AggregationResult",
    "CycleRunner",
    "aggregate",
    "generate_outputs",
    "OutputGenerator",
]
