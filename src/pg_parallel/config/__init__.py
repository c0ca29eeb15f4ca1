"""Configuration management: TOML loading, profiles and config models.

Usage:
    >>> from pg_parallel.config import load_config, resolve_connection
"""

from pg_parallel.config.loader import load_config, resolve_connection, resolve_jobs
from pg_parallel.config.models import AppConfig, ConnectionSettings, Profile, ToolSettings

__all__ = [
    "load_config",
    "resolve_connection",
    "resolve_jobs",
    "AppConfig",
    "ConnectionSettings",
    "Profile",
    "ToolSettings",
]
