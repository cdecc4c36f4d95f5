"""Workspace security.

Owns the workspace root and answers whether a path may be accessed. Tools
resolve every user-supplied path through this class before touching the
filesystem.
"""

import os
from pathlib import Path
from typing import Literal

AccessMode = Literal["read", "write", "execute"]


class WorkspaceSecurityError(Exception):
    """A path is outside the workspace or cannot be accessed."""

    def __init__(self, message: str, path: str | Path | None = None):
        super().__init__(message)
        self.message = message
        self.path = str(path) if path is not None else None


class WorkspaceSecurity:
    """Filesystem policy for one workspace root.

    Paths are resolved (symlinks included) before the containment check,
    so a link inside the workspace that points outside it is rejected.
    """

    def __init__(self, workspace_root: str | Path | None = None):
        root = Path(workspace_root).expanduser() if workspace_root else Path.cwd()
        self._root = root.resolve()

    def get_workspace_root(self) -> Path:
        return self._root

    def is_within_workspace(self, path: Path) -> bool:
        """Check if an already-resolved path is inside the workspace."""
        try:
            path.relative_to(self._root)
            return True
        except ValueError:
            return False

    def resolve(self, target: str | Path, base: str | Path | None = None) -> Path:
        """Resolve a path against ``base`` (default: the workspace root)."""
        path = Path(target).expanduser()
        if not path.is_absolute():
            path = Path(base or self._root) / path
        return path.resolve()

    def validate_path(self, target: str | Path, base: str | Path | None = None) -> Path:
        """Resolve a path and require it to be inside the workspace.

        Raises:
            WorkspaceSecurityError: If the resolved path is outside the root.
        """
        try:
            resolved = self.resolve(target, base)
        except (OSError, RuntimeError) as e:
            raise WorkspaceSecurityError(f"Cannot resolve path {target}: {e}", target) from e

        if not self.is_within_workspace(resolved):
            raise WorkspaceSecurityError(
                f"Path {target} is outside the workspace {self._root}", target
            )
        return resolved

    def validate_file_access(
        self,
        target: str | Path,
        mode: AccessMode = "read",
        base: str | Path | None = None,
    ) -> Path:
        """Validate that a path is inside the workspace and accessible.

        Read and execute access require the path to exist. Write access
        requires an existing, writable parent directory when the path
        itself does not exist yet.

        Raises:
            WorkspaceSecurityError: If the path is outside the workspace or
                not accessible in the requested mode.
        """
        resolved = self.validate_path(target, base)

        if mode in ("read", "execute"):
            if not resolved.exists():
                raise WorkspaceSecurityError(f"Path does not exist: {target}", target)
            flag = os.R_OK if mode == "read" else os.X_OK
            if not os.access(resolved, flag):
                raise WorkspaceSecurityError(f"No {mode} permission for {target}", target)
        else:
            existing = resolved if resolved.exists() else resolved.parent
            if not existing.exists() or not os.access(existing, os.W_OK):
                raise WorkspaceSecurityError(f"No write permission for {target}", target)

        return resolved

    def is_path_safe(self, target: str | Path) -> bool:
        try:
            self.validate_path(target)
            return True
        except WorkspaceSecurityError:
            return False
