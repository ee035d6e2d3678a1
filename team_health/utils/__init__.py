"""
Utility Modules

Configuration loading and snapshot storage utilities.
"""

from team_health.utils.config import load_config, Config

__all__ = ["load_config", "Config"]
