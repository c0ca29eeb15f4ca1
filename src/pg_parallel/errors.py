"""Exception hierarchy for pg-parallel.

Library code raises these; only the CLI turns them into exit codes.

Usage:
    from pg_parallel.errors import PgParallelError, ToolError
"""


class PgParallelError(Exception):
    """Base class for all pg-parallel errors."""

    pass


class ConfigError(PgParallelError):
    """Raised when configuration is missing or invalid (e.g., no database name)."""

    pass


class PreconditionError(PgParallelError):
    """Raised when a run cannot start because a precondition does not hold."""

    pass


class UnsupportedServerError(PreconditionError):
    """Raised when the server version cannot export a consistent snapshot."""

    pass


class ConnectionSetupError(PgParallelError):
    """Raised when a database connection cannot be opened or prepared."""

    pass


class SnapshotError(ConnectionSetupError):
    """Raised when the snapshot connection cannot be set up."""

    pass


class BackupLayoutError(PgParallelError):
    """Raised when a backup directory is unusable (missing files, bad names)."""

    pass


class ToolError(PgParallelError):
    """Raised when a delegated tool (pg_dump, pg_restore) exits non-zero.

    Attributes:
        command: The argument vector that was run.
        returncode: Exit status of the tool.
        stderr: Captured standard error, possibly truncated.
    """

    def __init__(self, command: list[str], returncode: int, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        message = f"{command[0]} exited with status {returncode}"
        tail = stderr.strip().splitlines()[-5:]
        if tail:
            message += ":\n  " + "\n  ".join(tail)
        super().__init__(message)
