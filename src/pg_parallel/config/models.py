"""Pydantic models for connection and tool configuration."""

from psycopg.conninfo import make_conninfo
from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class ConnectionSettings(BaseModel):
    """libpq connection parameters assembled from flags, profile and env."""

    dbname: str | None = None
    host: str | None = None
    port: int | None = None
    user: str | None = None

    def conninfo(self) -> str:
        """Build a libpq conninfo string (``dbname=x host=y ...``).

        The same string is handed to psycopg, ``pg_dump``, ``pg_restore``
        and ``psql`` (all accept a conninfo via ``-d``).
        """
        params = {
            k: v for k, v in self.model_dump().items() if v is not None
        }
        return make_conninfo(**params)


class ToolSettings(BaseModel):
    """External executables and the compression filter."""

    pg_dump: str = "pg_dump"
    pg_restore: str = "pg_restore"
    psql: str = "psql"
    compress: str = "gzip -c"           # reads stdin, writes stdout
    decompress: str = "gzip -dc"        # takes the artifact path as last arg


class Profile(BaseModel):
    """Named connection profile from pg-parallel.toml."""

    description: str = ""
    dbname: str | None = None
    host: str | None = None
    port: int | None = None
    user: str | None = None
    jobs: int | None = Field(default=None, ge=1)


class AppConfig(BaseModel):
    """Complete configuration from pg-parallel.toml."""

    tools: ToolSettings = Field(default_factory=ToolSettings)
    profiles: dict[str, Profile] = Field(default_factory=dict)
    default_jobs: int = Field(default=4, ge=1)
