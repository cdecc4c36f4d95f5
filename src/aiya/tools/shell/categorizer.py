"""Command categorizer.

Assigns exactly one ``CommandCategory`` to a command by walking the policy
tiers in strict precedence order (blocked, dangerous, risky, safe). The
first tier with a matching pattern wins and, inside that tier, the first
matching pattern is reported. Commands that match nothing are risky.
"""

from __future__ import annotations

from typing import Sequence

from aiya.tools.shell.catalog import POLICY_TIERS, PolicyPattern
from aiya.tools.shell.models import CommandCategorization, CommandCategory, CommandMetadata
from aiya.tools.shell.sanitizer import CommandSanitizer

_PACKAGE_MANAGERS = frozenset({"npm", "yarn", "pnpm", "npx", "pip", "pip3", "pipx", "uv", "poetry", "gem", "cargo"})
_FILE_WRITERS = frozenset({"mkdir", "rmdir", "touch", "cp", "mv", "ln", "rm", "tee", "install", "rsync", "chmod", "chown"})
_PRIVILEGED = frozenset({"sudo", "doas", "su", "pkexec"})


class CommandCategorizer:
    """Matches commands against the policy catalog."""

    def __init__(
        self,
        tiers: Sequence[Sequence[PolicyPattern]] = POLICY_TIERS,
        sanitizer: CommandSanitizer | None = None,
    ):
        self.tiers = tuple(
            sorted((tuple(t) for t in tiers if t), key=lambda t: t[0].priority, reverse=True)
        )
        self.sanitizer = sanitizer or CommandSanitizer()

    def categorize(self, command: str) -> CommandCategorization:
        """Categorize a command.

        Args:
            command: Raw command string.

        Returns:
            CommandCategorization with the winning tier, its reason and
            the pattern that fired.
        """
        stripped = command.strip() if isinstance(command, str) else ""
        if not stripped:
            return CommandCategorization(
                category=CommandCategory.BLOCKED,
                reason="Empty command",
                requires_confirmation=False,
            )

        for tier in self.tiers:
            for pattern in tier:
                if pattern.matches(stripped):
                    return CommandCategorization(
                        category=pattern.category,
                        reason=pattern.description,
                        requires_confirmation=_needs_confirmation(pattern.category),
                        matched_pattern=pattern.pattern,
                    )

        return CommandCategorization(
            category=CommandCategory.RISKY,
            reason="Unknown command requires confirmation",
            requires_confirmation=True,
        )

    def extract_metadata(self, command: str) -> CommandMetadata:
        """Describe a command: base program, tags, paths and variables."""
        words = self.sanitizer.tokenize(command.strip())
        base = words[0] if words else ""
        if base in _PRIVILEGED and len(words) > 1:
            tags = ["privileged"]
            base = words[1]
        else:
            tags = ["privileged"] if base in _PRIVILEGED else []

        network = self.sanitizer.has_network_operations(command)
        if base == "git":
            tags.append("git")
        if base in _PACKAGE_MANAGERS:
            tags.append("package-manager")
        if base in _FILE_WRITERS or ">" in command:
            tags.append("file-write")
        if network:
            tags.append("network")

        return CommandMetadata(
            base_command=base,
            category=self.categorize(command).category,
            tags=tags,
            file_paths=self.sanitizer.extract_file_paths(command),
            network=network,
            env_variables=self.sanitizer.extract_env_variables(command),
        )


def _needs_confirmation(category: CommandCategory) -> bool:
    return category in (CommandCategory.RISKY, CommandCategory.DANGEROUS)
