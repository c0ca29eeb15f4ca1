"""Tests for backup directory checks."""

import pytest

from conftest import units
from pg_parallel.backup.layout import check_artifact_names, is_case_insensitive
from pg_parallel.errors import BackupLayoutError


class TestCheckArtifactNames:
    """Tables differing only in case cannot share a case-folding directory."""

    def test_collision_on_case_insensitive_filesystem(self, tmp_path):
        with pytest.raises(BackupLayoutError, match="public.Orders and public.orders"):
            check_artifact_names(
                tmp_path, units("public.Orders", "public.orders"), case_insensitive=True
            )

    def test_no_collision_on_case_sensitive_filesystem(self, tmp_path):
        check_artifact_names(
            tmp_path, units("public.Orders", "public.orders"), case_insensitive=False
        )

    def test_distinct_names_pass(self, tmp_path):
        check_artifact_names(
            tmp_path, units("public.orders", "sales.orders"), case_insensitive=True
        )

    def test_case_check_leaves_directory_empty(self, tmp_path):
        is_case_insensitive(tmp_path)

        assert list(tmp_path.iterdir()) == []
