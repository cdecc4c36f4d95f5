"""Tests for workspace path policy and display helpers."""

from pathlib import Path

import pytest

from aiya.constants import format_size, truncate
from aiya.security import WorkspaceSecurity, WorkspaceSecurityError


class TestWorkspaceSecurity:
    """Tests for WorkspaceSecurity."""

    def test_root_is_resolved(self, temp_workspace: Path):
        assert WorkspaceSecurity(temp_workspace).get_workspace_root() == temp_workspace

    def test_relative_paths_resolve_against_root(self, workspace_security, temp_workspace):
        assert workspace_security.validate_path("src/main.py") == temp_workspace / "src" / "main.py"

    def test_relative_paths_resolve_against_base(self, workspace_security, temp_workspace):
        resolved = workspace_security.validate_path("main.py", base=temp_workspace / "src")
        assert resolved == temp_workspace / "src" / "main.py"

    def test_outside_path_rejected(self, workspace_security):
        with pytest.raises(WorkspaceSecurityError) as exc_info:
            workspace_security.validate_path("/etc/passwd")
        assert exc_info.value.path == "/etc/passwd"

    def test_is_path_safe(self, workspace_security):
        assert workspace_security.is_path_safe("README.md")
        assert not workspace_security.is_path_safe("../outside")

    def test_read_requires_existing_path(self, workspace_security):
        with pytest.raises(WorkspaceSecurityError, match="does not exist"):
            workspace_security.validate_file_access("missing.txt", "read")

    def test_write_allows_new_file(self, workspace_security, temp_workspace):
        resolved = workspace_security.validate_file_access("src/new.py", "write")
        assert resolved == temp_workspace / "src" / "new.py"

    def test_write_requires_existing_parent(self, workspace_security):
        with pytest.raises(WorkspaceSecurityError, match="No write permission"):
            workspace_security.validate_file_access("nope/new.py", "write")


class TestDisplayHelpers:
    """Tests for truncate and format_size."""

    def test_truncate(self):
        assert truncate("abc", 5) == "abc"
        assert truncate("abcdef", 3) == "abc..."

    @pytest.mark.parametrize(
        "size,expected",
        [(512, "512B"), (2048, "2.0KB"), (3 * 1024 * 1024, "3.0MB")],
    )
    def test_format_size(self, size, expected):
        assert format_size(size) == expected
