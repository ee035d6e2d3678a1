"""
Configuration Management

Loads configuration from YAML files with environment variable resolution.
"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field


class ScoringConfig(BaseModel):
    """Activity and communication scoring configuration."""
    base_score: int = 50
    # (max_days_since_activity, bonus) steps, checked in order
    recency_steps: list[tuple[int, int]] = Field(default_factory=lambda: [
        (7, 20),
        (30, 10),
        (90, 5),
    ])
    channel_flat_bonus: int = 4
    channel_volume_cap: float = 6.0
    channel_volume_weights: dict[str, float] = Field(default_factory=lambda: {
        "direct_message": 0.5,
        "group": 0.25,
        "meeting": 1.0,
        "email": 0.25,
        "file_share": 0.5,
    })


class HealthConfig(BaseModel):
    """Team health bonus configuration."""
    diversity_bonuses: list[tuple[int, int]] = Field(default_factory=lambda: [
        (4, 5),
        (3, 3),
    ])
    strong_relationship_threshold: int = 70
    strong_relationship_bonuses: list[tuple[float, int]] = Field(default_factory=lambda: [
        (0.30, 5),
        (0.20, 3),
    ])


class InsightsConfig(BaseModel):
    """Risk insight rule thresholds."""
    isolated_strength_below: int = 50
    weak_strength_below: int = 40
    source_high_risk_share: float = 0.30
    source_min_members: int = 3
    diversity_max_types: int = 2
    strong_rate_success_above: float = 0.50
    strong_rate_warning_below: float = 0.20
    locale: str = "en"


class FetchConfig(BaseModel):
    """Source adapter fan-in configuration."""
    timeout_seconds: float = 30.0
    permission_markers: list[str] = Field(default_factory=lambda: [
        "permission",
        "scope",
        "forbidden",
        "insufficient",
        "admin",
        "権限",
        "個人情報のみ",
    ])


class CacheConfig(BaseModel):
    """Snapshot store configuration."""
    enabled: bool = True
    path: str = ".cache/snapshots"
    ttl_days: int = 30
    max_size_mb: int = 50


class OutputConfig(BaseModel):
    """Output generation configuration."""
    directory: str = "./outputs"
    formats: list[str] = Field(default_factory=lambda: ["csv", "markdown", "json"])
    timestamp_filenames: bool = True
    markdown: dict[str, Any] = Field(default_factory=lambda: {
        "include_methodology": True,
        "max_items_per_section": 20,
    })


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = None
    redact_fields: list[str] = Field(default_factory=lambda: ["email"])


class Config(BaseModel):
    """Root configuration object."""
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    insights: InsightsConfig = Field(default_factory=InsightsConfig)
    fetch: FetchConfig = Field(default_factory=FetchConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _resolve_env_vars(data: Any) -> Any:
    """Recursively resolve environment variables in config values.

    Supports ${VAR_NAME} and ${VAR_NAME:-default} syntax.
    """
    if isinstance(data, str):
        if data.startswith("${") and data.endswith("}"):
            var_expr = data[2:-1]
            if ":-" in var_expr:
                var_name, default = var_expr.split(":-", 1)
                return os.environ.get(var_name, default)
            return os.environ.get(var_expr, data)
        return data
    elif isinstance(data, dict):
        return {k: _resolve_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars(item) for item in data]
    return data


def load_config(
    config_path: Optional[Path] = None,
    local_config_path: Optional[Path] = None,
) -> Config:
    """Load configuration from YAML files.

    Args:
        config_path: Path to main config file (default: config.yaml)
        local_config_path: Path to local overrides (default: config.local.yaml)

    Returns:
        Merged and validated Config object
    """
    project_root = Path(__file__).parent.parent.parent

    if config_path is None:
        config_path = project_root / "config.yaml"
    if local_config_path is None:
        local_config_path = project_root / "config.local.yaml"

    config_data: dict[str, Any] = {}

    if config_path.exists():
        with open(config_path) as f:
            config_data = yaml.safe_load(f) or {}

    if local_config_path.exists():
        with open(local_config_path) as f:
            local_data = yaml.safe_load(f) or {}
            config_data = _deep_merge(config_data, local_data)

    config_data = _resolve_env_vars(config_data)

    return Config(**config_data)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
