"""Detection of empty binary COPY streams.

A binary COPY stream is an 11-byte signature, a 32-bit flags field, a
32-bit header-extension length followed by that many bytes, then tuples,
then a 16-bit ``-1`` trailer.  A table with no rows yields the header and
the trailer and nothing else.
"""

import gzip
import logging
import struct
import zlib
from pathlib import Path

logger = logging.getLogger(__name__)

COPY_SIGNATURE = b"PGCOPY\n\xff\r\n\x00"
COPY_TRAILER = b"\xff\xff"

# Header extensions are empty in practice; anything larger is not a bare header
_MAX_EXTENSION = 1 << 16


def is_empty_copy_stream(data: bytes) -> bool:
    """True if ``data`` is a complete binary COPY stream with zero tuples."""
    fixed = len(COPY_SIGNATURE) + 8
    if len(data) < fixed or not data.startswith(COPY_SIGNATURE):
        return False
    (extension_length,) = struct.unpack("!I", data[fixed - 4:fixed])
    body = data[fixed + extension_length:]
    return body == COPY_TRAILER


def is_empty_artifact(path: Path) -> bool:
    """True if a gzip-compressed artifact holds an empty binary COPY stream.

    Reads only as much as a header-plus-trailer stream can occupy.  Files
    that are not gzip or not a COPY stream are reported as not empty.
    """
    limit = len(COPY_SIGNATURE) + 8 + _MAX_EXTENSION + len(COPY_TRAILER) + 1
    try:
        with gzip.open(path, "rb") as f:
            data = f.read(limit)
    except (OSError, EOFError, zlib.error) as e:
        logger.debug("Cannot inspect %s as gzip: %s", path.name, e)
        return False
    return is_empty_copy_stream(data)


def drop_if_empty(path: Path) -> bool:
    """Delete ``path`` if it holds an empty stream.

    Returns:
        True if the artifact was deleted.
    """
    if not path.is_file() or not is_empty_artifact(path):
        return False
    path.unlink()
    logger.debug("Removed empty artifact %s", path.name)
    return True
