"""On-disk backup layout: fixed file names, metadata, validation."""

import logging
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from pg_parallel.backup.models import FORMAT_VERSION, BackupMetadata
from pg_parallel.errors import BackupLayoutError
from pg_parallel.plan.catalog import units_from_artifacts
from pg_parallel.plan.models import WorkUnit
from pg_parallel.plan.naming import ARTIFACT_PREFIX, parse_artifact_name

logger = logging.getLogger(__name__)

PRE_DATA = "pre-data.dmp"
POST_DATA = "post-data.dmp"
METADATA = "metadata.json"


def default_output_dir(now: datetime | None = None) -> Path:
    """Timestamped directory name in the working directory."""
    now = now or datetime.now()
    return Path.cwd() / f"pg-parallel-{now.strftime('%Y%m%d-%H%M%S')}"


def prepare_output_dir(output_dir: Path | None) -> Path:
    """Create the backup directory; it must be new or empty.

    Raises:
        BackupLayoutError: If the directory exists and is not empty, or is
            not a directory.
    """
    output_dir = output_dir or default_output_dir()
    if output_dir.exists():
        if not output_dir.is_dir():
            raise BackupLayoutError(f"Not a directory: {output_dir}")
        if any(output_dir.iterdir()):
            raise BackupLayoutError(f"Output directory is not empty: {output_dir}")
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


def is_case_insensitive(directory: Path) -> bool:
    """True if ``directory`` lives on a filesystem that folds case."""
    marker = directory / ".pg-parallel-Case"
    marker.touch()
    try:
        return (directory / ".pg-parallel-case").exists()
    finally:
        marker.unlink()


def check_artifact_names(
    directory: Path,
    units: Iterable[WorkUnit],
    case_insensitive: bool | None = None,
) -> None:
    """Refuse a plan whose artifacts would overwrite each other.

    Escaped names differ whenever the tables differ, but ``public."Orders"``
    and ``public.orders`` map to the same file where case is folded.

    Args:
        directory: Backup directory.
        units: All units about to be dumped.
        case_insensitive: Filesystem behaviour; tested in ``directory`` when
            not given.

    Raises:
        BackupLayoutError: If two units collide on this filesystem.
    """
    if case_insensitive is None:
        case_insensitive = is_case_insensitive(directory)
    if not case_insensitive:
        return

    seen: dict[str, WorkUnit] = {}
    for unit in units:
        folded = unit.artifact_name.casefold()
        if folded in seen:
            raise BackupLayoutError(
                f"Tables {seen[folded]} and {unit} would share the data file "
                f"{unit.artifact_name} on the case-insensitive filesystem of {directory}"
            )
        seen[folded] = unit


def write_metadata(directory: Path, metadata: BackupMetadata) -> Path:
    path = directory / METADATA
    path.write_text(metadata.model_dump_json(indent=2) + "\n")
    return path


def read_metadata(directory: Path) -> BackupMetadata | None:
    """Load ``metadata.json``; ``None`` if the backup has none.

    Raises:
        BackupLayoutError: If the file exists but is unreadable.
    """
    path = directory / METADATA
    if not path.exists():
        return None
    try:
        return BackupMetadata.model_validate_json(path.read_text())
    except (ValidationError, ValueError) as e:
        raise BackupLayoutError(f"Invalid metadata in {path}: {e}") from e


def require_sections(directory: Path) -> None:
    """Raise ``BackupLayoutError`` unless both section archives are present."""
    if not directory.is_dir():
        raise BackupLayoutError(f"Backup directory not found: {directory}")
    missing = [name for name in (PRE_DATA, POST_DATA) if not (directory / name).is_file()]
    if missing:
        raise BackupLayoutError(
            f"Not a complete backup: missing {', '.join(missing)} in {directory}"
        )


def validate_backup(directory: Path) -> dict:
    """Check a backup directory without touching any database.

    Returns:
        Dict with ``valid`` (bool), ``errors`` (list[str]),
        ``warnings`` (list[str]), ``metadata`` (BackupMetadata | None) and
        ``table_count`` (artifacts found).

    Example:
        report = validate_backup(Path("pg-parallel-20260101-120000"))
        if report["errors"]:
            raise SystemExit(1)
    """
    errors: list[str] = []
    warnings: list[str] = []
    metadata = None
    table_count = 0

    try:
        require_sections(directory)
    except BackupLayoutError as e:
        errors.append(str(e))
        return {"valid": False, "errors": errors, "warnings": warnings,
                "metadata": None, "table_count": 0}

    try:
        metadata = read_metadata(directory)
    except BackupLayoutError as e:
        errors.append(str(e))

    if metadata is None and not errors:
        warnings.append(f"No {METADATA}; the dump may not have completed")
    elif metadata is not None and metadata.format_version != FORMAT_VERSION:
        errors.append(
            f"Unsupported backup format '{metadata.format_version}' "
            f"(expected '{FORMAT_VERSION}')"
        )

    for path in directory.iterdir():
        if path.name.startswith(ARTIFACT_PREFIX) and parse_artifact_name(path.name) is None:
            warnings.append(f"Ignoring unrecognised data file: {path.name}")

    table_count = len(units_from_artifacts(directory))
    if metadata is not None and metadata.table_count != table_count:
        warnings.append(
            f"Metadata records {metadata.table_count} tables, "
            f"found {table_count} data files"
        )

    return {
        "valid": not errors,
        "errors": errors,
        "warnings": warnings,
        "metadata": metadata,
        "table_count": table_count,
    }
