"""Configuration for the shell tool.

Holds the per-session policy state: trusted and always-block patterns,
confirmation toggles and execution limits. A config instance belongs to
one client session; trust and block decisions mutate it in memory only.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from aiya.tools.shell.catalog import DEFAULT_SHELL_CONFIG, Timeouts
from aiya.tools.shell.errors import ShellConfigurationError


@dataclass
class ShellToolConfig:
    """Policy configuration for shell command execution.

    Attributes:
        trusted_patterns: Regexes that skip confirmation for any
            non-blocked command they match.
        always_block_patterns: Regexes that deny any command they match.
        require_confirmation_for_risky: Prompt before risky commands.
        require_confirmation_for_dangerous: Prompt before dangerous commands.
        allow_dangerous: Permit dangerous commands at all.
        allow_complex_commands: Permit chained, piped or substituted commands.
        session_memory: Remember confirmation decisions for the session.
        max_execution_time: Default command timeout in seconds.
        confirmation_timeout: Seconds to wait for a confirmation answer.
        max_output_bytes: Per-stream output buffer cap.
    """

    trusted_patterns: list[str] = field(
        default_factory=lambda: list(DEFAULT_SHELL_CONFIG["trusted_patterns"])
    )
    always_block_patterns: list[str] = field(
        default_factory=lambda: list(DEFAULT_SHELL_CONFIG["always_block_patterns"])
    )

    # Confirmation policy
    require_confirmation_for_risky: bool = DEFAULT_SHELL_CONFIG["require_confirmation_for_risky"]
    require_confirmation_for_dangerous: bool = DEFAULT_SHELL_CONFIG["require_confirmation_for_dangerous"]
    allow_dangerous: bool = DEFAULT_SHELL_CONFIG["allow_dangerous"]
    allow_complex_commands: bool = DEFAULT_SHELL_CONFIG["allow_complex_commands"]
    session_memory: bool = DEFAULT_SHELL_CONFIG["session_memory"]

    # Limits
    max_execution_time: float = DEFAULT_SHELL_CONFIG["max_execution_time"]
    confirmation_timeout: float = DEFAULT_SHELL_CONFIG["confirmation_timeout"]
    max_output_bytes: int = DEFAULT_SHELL_CONFIG["max_output_bytes"]

    def validate(self) -> None:
        """Check values and patterns.

        Raises:
            ShellConfigurationError: If a value is out of range or a
                pattern does not compile.
        """
        if not 0 < self.max_execution_time <= Timeouts.MAX_COMMAND_EXECUTION:
            raise ShellConfigurationError(
                f"max_execution_time must be between 0 and "
                f"{Timeouts.MAX_COMMAND_EXECUTION} seconds, got {self.max_execution_time}"
            )
        if self.confirmation_timeout <= 0:
            raise ShellConfigurationError(
                f"confirmation_timeout must be positive, got {self.confirmation_timeout}"
            )
        if self.max_output_bytes <= 0:
            raise ShellConfigurationError(
                f"max_output_bytes must be positive, got {self.max_output_bytes}"
            )
        for name in ("trusted_patterns", "always_block_patterns"):
            for pattern in getattr(self, name):
                compile_pattern(pattern, name)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShellToolConfig":
        """Create config from dictionary.

        Unknown keys are ignored; missing keys take default values.

        Args:
            data: Configuration dictionary.

        Returns:
            Validated ShellToolConfig instance.
        """
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        for name in ("trusted_patterns", "always_block_patterns"):
            if name in values:
                values[name] = list(values[name] or [])
        config = cls(**values)
        config.validate()
        return config

    @classmethod
    def from_yaml(cls, path: Path | str) -> "ShellToolConfig":
        """Load config from YAML file.

        A missing file yields the default config.

        Args:
            path: Path to YAML configuration file.

        Returns:
            ShellToolConfig instance.
        """
        path = Path(path)
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ShellConfigurationError(f"Shell config {path} must contain a mapping")
        return cls.from_dict(data)

    @classmethod
    def load_default(cls, app_name: str = "aiya") -> "ShellToolConfig":
        """Load configuration from the default location.

        Looks for config in:
        1. ~/.config/{app_name}/shell.yaml
        2. ./.{app_name}/shell.yaml (project local)

        Returns:
            ShellToolConfig instance.
        """
        user_config = Path.home() / ".config" / app_name / "shell.yaml"
        if user_config.exists():
            return cls.from_yaml(user_config)

        local_config = Path(f".{app_name}") / "shell.yaml"
        if local_config.exists():
            return cls.from_yaml(local_config)

        return cls()

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "trusted_patterns": list(self.trusted_patterns),
            "always_block_patterns": list(self.always_block_patterns),
            "require_confirmation_for_risky": self.require_confirmation_for_risky,
            "require_confirmation_for_dangerous": self.require_confirmation_for_dangerous,
            "allow_dangerous": self.allow_dangerous,
            "allow_complex_commands": self.allow_complex_commands,
            "session_memory": self.session_memory,
            "max_execution_time": self.max_execution_time,
            "confirmation_timeout": self.confirmation_timeout,
            "max_output_bytes": self.max_output_bytes,
        }

    def to_yaml(self, path: Path | str) -> None:
        """Write config to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)

    def copy(self) -> "ShellToolConfig":
        """Return an independent copy."""
        return copy.deepcopy(self)


def compile_pattern(pattern: str, source: str = "pattern") -> re.Pattern[str]:
    """Compile a user-supplied policy pattern.

    Raises:
        ShellConfigurationError: If the pattern is not a valid regex.
    """
    if not isinstance(pattern, str) or not pattern:
        raise ShellConfigurationError(f"Invalid entry in {source}: {pattern!r}")
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ShellConfigurationError(
            f"Invalid regex in {source}: {pattern!r} ({e})"
        ) from e


def literal_pattern(command: str) -> str:
    """Build a pattern matching exactly one literal command."""
    return f"^{re.escape(command.strip())}$"
