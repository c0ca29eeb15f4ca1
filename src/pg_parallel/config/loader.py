"""Configuration loading: TOML file, profiles and libpq environment."""

import os
import tomllib
from pathlib import Path

from pydantic import ValidationError

from pg_parallel.config.models import AppConfig, ConnectionSettings, Profile, ToolSettings
from pg_parallel.errors import ConfigError

DEFAULT_CONFIG_NAME = "pg-parallel.toml"

# libpq environment variables consulted when neither flag nor profile sets a value
_ENV_VARS = {
    "dbname": "PGDATABASE",
    "host": "PGHOST",
    "port": "PGPORT",
    "user": "PGUSER",
}


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from a TOML file.

    Args:
        config_path: Explicit path (``--config``).  When ``None``, reads
            ``pg-parallel.toml`` from the working directory if present,
            otherwise returns defaults.

    Returns:
        AppConfig with tool settings and profiles.

    Raises:
        ConfigError: If an explicit file is missing or any file is invalid.
    """
    if config_path is None:
        config_path = Path.cwd() / DEFAULT_CONFIG_NAME
        if not config_path.exists():
            return AppConfig()
    elif not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e

    try:
        profiles = {
            name: Profile(**profile_data)
            for name, profile_data in data.get("profiles", {}).items()
        }
        return AppConfig(
            tools=ToolSettings(**data.get("tools", {})),
            profiles=profiles,
            default_jobs=data.get("jobs", 4),
        )
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e


def resolve_connection(
    config: AppConfig,
    profile_name: str | None = None,
    *,
    dbname: str | None = None,
    host: str | None = None,
    port: int | None = None,
    user: str | None = None,
    environ: dict[str, str] | None = None,
) -> ConnectionSettings:
    """Merge connection parameters: flag > profile > libpq env.

    Raises:
        ConfigError: If the profile is unknown or no database name results.
    """
    environ = os.environ if environ is None else environ
    profile = _get_profile(config, profile_name)
    flags = {"dbname": dbname, "host": host, "port": port, "user": user}

    merged: dict[str, object] = {}
    for key, value in flags.items():
        if value is None and profile is not None:
            value = getattr(profile, key)
        if value is None:
            value = environ.get(_ENV_VARS[key]) or None
        merged[key] = value

    if not merged["dbname"]:
        raise ConfigError(
            "No database name given.\n"
            "Pass -d/--dbname, set it in a profile, or export PGDATABASE."
        )

    try:
        return ConnectionSettings(**merged)
    except ValidationError as e:
        raise ConfigError(f"Invalid connection parameters: {e}") from e


def resolve_jobs(
    config: AppConfig, profile_name: str | None = None, jobs: int | None = None
) -> int:
    """Worker count: flag > profile > config default."""
    if jobs is None:
        profile = _get_profile(config, profile_name)
        if profile is not None and profile.jobs is not None:
            jobs = profile.jobs
        else:
            jobs = config.default_jobs
    if jobs < 1:
        raise ConfigError(f"Job count must be at least 1, got {jobs}")
    return jobs


def _get_profile(config: AppConfig, profile_name: str | None) -> Profile | None:
    if profile_name is None:
        return None
    if profile_name not in config.profiles:
        available = ", ".join(config.profiles) or "(none)"
        raise ConfigError(
            f"Profile '{profile_name}' not found.\n"
            f"Available profiles: {available}"
        )
    return config.profiles[profile_name]
