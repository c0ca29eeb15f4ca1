"""Artifact file naming for per-table data streams.

``data-<schema>.<table>.bin.gz`` with both names percent-encoded: every byte
outside ``[A-Za-z0-9_-]`` becomes ``%XX``, so the ``.`` separator never
occurs inside an encoded name and the mapping round-trips exactly.
"""

import re
from urllib.parse import quote, unquote

ARTIFACT_PREFIX = "data-"
ARTIFACT_SUFFIX = ".bin.gz"

_ARTIFACT_RE = re.compile(r"^data-([A-Za-z0-9_%-]+)\.([A-Za-z0-9_%-]+)\.bin\.gz$")


def escape_name(name: str) -> str:
    """Percent-encode an identifier for use in a file name."""
    # quote() leaves "." and "~" alone; both must be encoded here
    return quote(name, safe="").replace(".", "%2E").replace("~", "%7E")


def unescape_name(escaped: str) -> str:
    """Inverse of ``escape_name``."""
    return unquote(escaped, errors="strict")


def unit_key(schema_name: str, table_name: str) -> str:
    """Filesystem- and shell-safe key ``<esc(schema)>.<esc(table)>``."""
    return f"{escape_name(schema_name)}.{escape_name(table_name)}"


def artifact_name(schema_name: str, table_name: str) -> str:
    """File name of a table's compressed data stream."""
    return f"{ARTIFACT_PREFIX}{unit_key(schema_name, table_name)}{ARTIFACT_SUFFIX}"


def parse_artifact_name(filename: str) -> tuple[str, str] | None:
    """Recover ``(schema, table)`` from an artifact file name.

    Returns:
        The decoded pair, or ``None`` if the name is not an artifact name.
    """
    match = _ARTIFACT_RE.match(filename)
    if not match:
        return None
    try:
        return unescape_name(match.group(1)), unescape_name(match.group(2))
    except UnicodeDecodeError:
        return None
