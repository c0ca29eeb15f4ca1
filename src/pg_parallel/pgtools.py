"""Delegated tools: ``pg_dump`` and ``pg_restore`` invocations.

Schema sections (pre-data, post-data) and the archive table of contents are
produced and consumed entirely by the PostgreSQL client tools.  Each call
runs to completion before returning and raises ``ToolError`` on failure.
"""

import asyncio
import logging
import shlex
from pathlib import Path

from pydantic import BaseModel, Field

from pg_parallel.config.models import ToolSettings
from pg_parallel.errors import ToolError

logger = logging.getLogger(__name__)


class DumpFilters(BaseModel):
    """Schema/table include and exclude patterns forwarded to ``pg_dump``."""

    schemas: list[str] = Field(default_factory=list)
    exclude_schemas: list[str] = Field(default_factory=list)
    tables: list[str] = Field(default_factory=list)
    exclude_tables: list[str] = Field(default_factory=list)

    def to_args(self) -> list[str]:
        args: list[str] = []
        for option, patterns in (
            ("--schema", self.schemas),
            ("--exclude-schema", self.exclude_schemas),
            ("--table", self.tables),
            ("--exclude-table", self.exclude_tables),
        ):
            for pattern in patterns:
                args.extend([option, pattern])
        return args


async def run_tool(command: list[str]) -> str:
    """Run a tool to completion and return its stdout.

    Raises:
        ToolError: If the tool exits non-zero or cannot be started.
    """
    logger.debug("Running: %s", shlex.join(command))
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            # a terminal SIGINT only cancels the run; the tool finishes its section
            start_new_session=True,
        )
    except OSError as e:
        raise ToolError(command, 127, str(e)) from e

    stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        raise ToolError(command, proc.returncode, stderr.decode(errors="replace"))
    return stdout.decode(errors="replace")


async def dump_section(
    section: str,
    output: Path,
    conninfo: str,
    token: str,
    tools: ToolSettings,
    filters: DumpFilters | None = None,
) -> None:
    """Write one schema section (``pre-data`` / ``post-data``) as of the snapshot."""
    command = [
        tools.pg_dump,
        "--snapshot", token,
        "--section", section,
        "--format", "custom",
        "--file", str(output),
        *(filters or DumpFilters()).to_args(),
        "--dbname", conninfo,
    ]
    await run_tool(command)


async def restore_section(
    archive: Path,
    conninfo: str,
    tools: ToolSettings,
    jobs: int = 1,
) -> None:
    """Load a section archive into the target database, stopping at the first error."""
    command = [
        tools.pg_restore,
        "--exit-on-error",
        "--dbname", conninfo,
    ]
    if jobs > 1:
        command.extend(["--jobs", str(jobs)])
    command.append(str(archive))
    await run_tool(command)


async def list_archive(archive: Path, tools: ToolSettings) -> str:
    """Return the ``pg_restore --list`` table of contents of an archive."""
    return await run_tool([tools.pg_restore, "--list", str(archive)])
