"""Command filter: the single allow/deny oracle for shell commands.

Checks run in this order:

1. Input validation (empty, length, control characters)
2. Working directory validation, before anything else uses it
3. Categorization; a blocked tier match is an unconditional deny
4. Always-block patterns, also an unconditional deny
5. Paths named by the command must stay inside the workspace
6. Trusted patterns force-allow without confirmation
7. Sanitizer findings: complex commands may be denied, and a safe command
   that expands or chains is raised to risky
8. Dangerous commands need ``allow_dangerous``
9. The category and config decide whether confirmation is required

Steps 1 to 5 also run for executions that bypass the filter after a
trust decision.
"""

from __future__ import annotations

import dataclasses
import re
import threading
from pathlib import Path
from typing import Any

from aiya.logging import Loggers
from aiya.tools.shell.boundary import WorkspaceBoundaryEnforcer
from aiya.tools.shell.categorizer import CommandCategorizer
from aiya.tools.shell.config import ShellToolConfig, compile_pattern, literal_pattern
from aiya.tools.shell.errors import ShellConfigurationError, ShellExecutionError
from aiya.tools.shell.models import (
    CommandCategorization,
    CommandCategory,
    FilterResult,
    ShellErrorType,
)
from aiya.tools.shell.sanitizer import CommandSanitizer

logger = Loggers.security()


class CommandFilter:
    """Combines categorizer, sanitizer, boundary enforcer and live config.

    Owns the session's ``ShellToolConfig``. Pattern list mutations and
    config snapshots are serialized by an internal lock, so concurrent
    trust and block decisions cannot lose updates.
    """

    def __init__(
        self,
        config: ShellToolConfig,
        boundary: WorkspaceBoundaryEnforcer,
        categorizer: CommandCategorizer | None = None,
        sanitizer: CommandSanitizer | None = None,
    ):
        config.validate()
        self._config = config.copy()
        self._lock = threading.RLock()
        self.boundary = boundary
        self.sanitizer = sanitizer or boundary.sanitizer
        self.categorizer = categorizer or CommandCategorizer(sanitizer=self.sanitizer)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def filter_command(
        self, command: str, working_directory: str | Path | None = None
    ) -> FilterResult:
        """Decide whether a command may run and whether it needs confirmation."""
        result = self.enforce_unconditional(command, working_directory)
        if not result.allowed:
            return result

        config = self.get_config()
        stripped = command.strip()
        categorization = result.categorization
        category = categorization.category

        trusted = self._match_any(config.trusted_patterns, stripped, flags=0)
        if trusted is not None:
            logger.debug("command_trusted", command=stripped, pattern=trusted)
            return dataclasses.replace(
                result,
                reason=f"Matches trusted pattern {trusted}",
                trusted=True,
                requires_confirmation=False,
            )

        warnings: list[str] = []
        simple = self.sanitizer.is_simple_command(stripped)
        if not simple:
            if not config.allow_complex_commands:
                return self._deny(
                    result,
                    "Complex commands (chaining, pipes, redirection) are disabled in configuration",
                    ShellErrorType.COMMAND_BLOCKED,
                )
            warnings.append("compound command")
        injection = self.sanitizer.detect_injection(stripped)
        warnings.extend(injection.patterns)

        reason = categorization.reason
        if category is CommandCategory.SAFE and warnings:
            category = CommandCategory.RISKY
            reason = f"{reason}; raised to risky ({', '.join(warnings)})"

        if category is CommandCategory.DANGEROUS and not config.allow_dangerous:
            return self._deny(
                result,
                f"Dangerous commands are disabled in configuration: {categorization.reason}",
                ShellErrorType.DANGEROUS_COMMAND,
            )

        return dataclasses.replace(
            result,
            reason=reason,
            category=category,
            requires_confirmation=self._requires_confirmation(category, config),
            warnings=warnings,
        )

    def enforce_unconditional(
        self, command: str, working_directory: str | Path | None = None
    ) -> FilterResult:
        """Run the checks that no trust decision or config can bypass."""
        try:
            cwd = self.boundary.validate_working_directory(working_directory)
            stripped = self.sanitizer.validate_input(command)
        except ShellExecutionError as e:
            return FilterResult(allowed=False, reason=e.message, error_type=e.error_type)

        categorization = self.categorizer.categorize(stripped)
        result = FilterResult(
            allowed=True,
            category=categorization.category,
            categorization=categorization,
            working_directory=str(cwd),
        )

        if categorization.category is CommandCategory.BLOCKED:
            return self._deny(
                result,
                f"Command blocked by security policy: {categorization.reason}",
                ShellErrorType.COMMAND_BLOCKED,
            )

        blocked_by = self._match_any(self.get_config().always_block_patterns, stripped, flags=re.IGNORECASE)
        if blocked_by is not None:
            return self._deny(
                result,
                f"Command matches always-block pattern {blocked_by}",
                ShellErrorType.COMMAND_BLOCKED,
            )

        try:
            self.boundary.validate_command_paths(stripped, cwd)
        except ShellExecutionError as e:
            return self._deny(result, e.message, e.error_type)

        return result

    def categorize(self, command: str) -> CommandCategorization:
        return self.categorizer.categorize(command)

    # ------------------------------------------------------------------
    # Config
    # ------------------------------------------------------------------

    def get_config(self) -> ShellToolConfig:
        """Return a snapshot of the live config."""
        with self._lock:
            return self._config.copy()

    def update_config(self, **changes: Any) -> ShellToolConfig:
        """Apply changes to the live config.

        Raises:
            ShellConfigurationError: For unknown keys or invalid values.
        """
        known = {f.name for f in dataclasses.fields(ShellToolConfig)}
        unknown = set(changes) - known
        if unknown:
            raise ShellConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        with self._lock:
            # List values must not alias the caller's lists
            updated = dataclasses.replace(self._config, **changes).copy()
            updated.validate()
            self._config = updated
            logger.info("shell_config_updated", keys=sorted(changes))
            return updated.copy()

    def add_trusted_pattern(self, pattern: str) -> None:
        self._add_pattern("trusted_patterns", pattern)

    def add_block_pattern(self, pattern: str) -> None:
        self._add_pattern("always_block_patterns", pattern)

    def remove_trusted_pattern(self, pattern: str) -> bool:
        return self._remove_pattern("trusted_patterns", pattern)

    def remove_block_pattern(self, pattern: str) -> bool:
        return self._remove_pattern("always_block_patterns", pattern)

    def trust_command(self, command: str) -> str:
        """Trust one literal command for the rest of the session."""
        pattern = literal_pattern(command)
        self.add_trusted_pattern(pattern)
        return pattern

    def block_command(self, command: str) -> str:
        """Block one literal command for the rest of the session."""
        pattern = literal_pattern(command)
        self.add_block_pattern(pattern)
        return pattern

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _add_pattern(self, name: str, pattern: str) -> None:
        compile_pattern(pattern, name)
        with self._lock:
            patterns: list[str] = getattr(self._config, name)
            if pattern not in patterns:
                patterns.append(pattern)
                logger.info("policy_pattern_added", list=name, pattern=pattern)

    def _remove_pattern(self, name: str, pattern: str) -> bool:
        with self._lock:
            patterns: list[str] = getattr(self._config, name)
            if pattern in patterns:
                patterns.remove(pattern)
                return True
            return False

    @staticmethod
    def _match_any(patterns: list[str], command: str, flags: int) -> str | None:
        for pattern in patterns:
            if re.search(pattern, command, flags):
                return pattern
        return None

    @staticmethod
    def _requires_confirmation(category: CommandCategory, config: ShellToolConfig) -> bool:
        if category is CommandCategory.RISKY:
            return config.require_confirmation_for_risky
        if category is CommandCategory.DANGEROUS:
            return config.require_confirmation_for_dangerous
        return False

    @staticmethod
    def _deny(result: FilterResult, reason: str, error_type: ShellErrorType) -> FilterResult:
        logger.warning(
            "command_denied_by_filter",
            reason=reason,
            category=result.category.value,
            error_type=error_type.value,
        )
        return dataclasses.replace(
            result,
            allowed=False,
            reason=reason,
            error_type=error_type,
            requires_confirmation=False,
        )
