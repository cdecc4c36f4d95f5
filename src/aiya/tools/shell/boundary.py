"""Workspace boundary enforcement for shell commands.

Keeps the working directory and every path a command names inside the
workspace root supplied by ``WorkspaceSecurity``:

- ``..`` traversal in the working directory is a workspace violation
- ``..`` traversal in the command is a path traversal error
- Absolute and home-relative paths must resolve inside the root
"""

from __future__ import annotations

from pathlib import Path

from aiya.logging import Loggers
from aiya.security.workspace import WorkspaceSecurity, WorkspaceSecurityError
from aiya.tools.shell.catalog import (
    HARMLESS_SYSTEM_PATHS,
    PATH_TRAVERSAL_PATTERNS,
    SYSTEM_DIRECTORY_PREFIXES,
)
from aiya.tools.shell.errors import (
    ErrorContext,
    ShellInputValidationError,
    ShellPathTraversalError,
    ShellWorkspaceViolationError,
)
from aiya.tools.shell.sanitizer import CommandSanitizer

logger = Loggers.security()

_HOME_PREFIXES = ("${HOME}", "$HOME")


class WorkspaceBoundaryEnforcer:
    """Validates working directories and command paths against the workspace."""

    def __init__(
        self,
        workspace: WorkspaceSecurity,
        sanitizer: CommandSanitizer | None = None,
    ):
        self.workspace = workspace
        self.sanitizer = sanitizer or CommandSanitizer()

    @property
    def workspace_root(self) -> Path:
        return self.workspace.get_workspace_root()

    def validate_command(self, command: str, working_directory: str | Path | None = None) -> Path:
        """Validate a command and its working directory.

        Args:
            command: The command to check.
            working_directory: Optional cwd override, relative to the root
                or absolute.

        Returns:
            The resolved working directory.

        Raises:
            ShellWorkspaceViolationError: If the cwd or a path is outside
                the workspace.
            ShellPathTraversalError: If the command contains ``..`` traversal.
        """
        cwd = self.validate_working_directory(working_directory)
        self.validate_command_paths(command, cwd)
        return cwd

    def validate_working_directory(self, working_directory: str | Path | None) -> Path:
        """Resolve and check a cwd override. None means the workspace root."""
        if working_directory is None or working_directory == "":
            return self.workspace_root
        if not isinstance(working_directory, (str, Path)):
            raise ShellInputValidationError("Working directory must be a string")

        raw = str(working_directory)
        context = ErrorContext(working_directory=raw)
        if self.check_path_traversal(raw) or ".." in Path(raw).parts:
            logger.warning("cwd_traversal_rejected", cwd=raw)
            raise ShellWorkspaceViolationError(
                f"Working directory {raw!r} contains path traversal and is outside the workspace",
                context=context,
            )

        try:
            resolved = self.workspace.validate_file_access(raw, "read")
        except WorkspaceSecurityError as e:
            logger.warning("cwd_rejected", cwd=raw, reason=e.message)
            raise ShellWorkspaceViolationError(
                f"Working directory {raw!r} is outside the workspace or inaccessible: {e.message}",
                context=context,
            ) from e

        if not resolved.is_dir():
            raise ShellWorkspaceViolationError(
                f"Working directory {raw!r} is not a directory", context=context
            )
        return resolved

    def check_path_traversal(self, text: str) -> str | None:
        """Return the name of the first traversal pattern found, if any."""
        for regex, name in PATH_TRAVERSAL_PATTERNS:
            if regex.search(text):
                return name
        return None

    def validate_command_paths(self, command: str, working_directory: Path) -> list[Path]:
        """Check every path-like word of a command.

        Returns:
            Resolved paths that passed the check.
        """
        context = ErrorContext(command=command, working_directory=str(working_directory))

        finding = self.check_path_traversal(command)
        if finding:
            raise ShellPathTraversalError(
                f"Path traversal detected in command ({finding})", context=context
            )

        resolved_paths: list[Path] = []
        for raw in self.sanitizer.extract_file_paths(command):
            if ".." in raw.replace("\\", "/").split("/"):
                raise ShellPathTraversalError(
                    f"Path traversal detected in {raw!r}", context=context
                )
            if raw in HARMLESS_SYSTEM_PATHS:
                continue

            resolved = self.workspace.resolve(self._expand_home(raw), base=working_directory)
            if not self.workspace.is_within_workspace(resolved):
                raise ShellWorkspaceViolationError(
                    self._describe_violation(raw, resolved), context=context
                )
            resolved_paths.append(resolved)
        return resolved_paths

    @staticmethod
    def _expand_home(raw: str) -> str:
        for prefix in _HOME_PREFIXES:
            if raw.startswith(prefix):
                return str(Path.home()) + raw[len(prefix):]
        return raw

    def _describe_violation(self, raw: str, resolved: Path) -> str:
        text = resolved.as_posix()
        for prefix in SYSTEM_DIRECTORY_PREFIXES:
            if text == prefix or text.startswith(prefix + "/"):
                return f"Path {raw!r} is in system directory {prefix}, outside the workspace"
        return f"Path {raw!r} is outside the workspace {self.workspace_root}"
