"""Tests for empty binary COPY stream detection and removal."""

import gzip
import struct

from pg_parallel.plan.copystream import (
    COPY_SIGNATURE,
    COPY_TRAILER,
    drop_if_empty,
    is_empty_copy_stream,
)

HEADER = COPY_SIGNATURE + struct.pack("!II", 0, 0)
EMPTY_STREAM = HEADER + COPY_TRAILER
# one tuple with one int4 column holding 42
ONE_ROW = HEADER + struct.pack("!hii", 1, 4, 42) + COPY_TRAILER


def _write_gz(path, data):
    with gzip.open(path, "wb") as f:
        f.write(data)
    return path


class TestIsEmptyCopyStream:
    """Header and trailer parsing."""

    def test_empty(self):
        assert is_empty_copy_stream(EMPTY_STREAM)

    def test_with_rows(self):
        assert not is_empty_copy_stream(ONE_ROW)

    def test_header_extension_skipped(self):
        stream = COPY_SIGNATURE + struct.pack("!II", 0, 3) + b"ext" + COPY_TRAILER

        assert is_empty_copy_stream(stream)

    def test_truncated(self):
        assert not is_empty_copy_stream(HEADER)
        assert not is_empty_copy_stream(COPY_SIGNATURE)
        assert not is_empty_copy_stream(b"")

    def test_not_binary_copy(self):
        assert not is_empty_copy_stream(b"1\tfoo\n\\.\n")

    def test_same_length_as_empty_but_different_content(self):
        """A stream with the empty stream's length is not empty unless it parses so."""
        lookalike = HEADER + b"\x00\x00"

        assert len(lookalike) == len(EMPTY_STREAM)
        assert not is_empty_copy_stream(lookalike)


class TestDropIfEmpty:
    """Artifacts of empty tables are deleted, others kept."""

    def test_empty_artifact_removed(self, tmp_path):
        path = _write_gz(tmp_path / "data-public.empty.bin.gz", EMPTY_STREAM)

        assert drop_if_empty(path) is True
        assert "data-public.empty.bin.gz" not in [p.name for p in tmp_path.iterdir()]

    def test_non_empty_artifact_kept(self, tmp_path):
        path = _write_gz(tmp_path / "data-public.orders.bin.gz", ONE_ROW)

        assert drop_if_empty(path) is False
        assert path.exists()

    def test_not_gzip_kept(self, tmp_path):
        path = tmp_path / "data-public.orders.bin.gz"
        path.write_bytes(EMPTY_STREAM)

        assert drop_if_empty(path) is False
        assert path.exists()

    def test_missing_file(self, tmp_path):
        assert drop_if_empty(tmp_path / "data-public.gone.bin.gz") is False
