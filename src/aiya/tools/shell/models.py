"""Data models for the shell command security pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class CommandCategory(Enum):
    """Category assigned to a candidate command.

    Severity order: BLOCKED > DANGEROUS > RISKY > SAFE.
    """
    SAFE = "safe"
    RISKY = "risky"
    DANGEROUS = "dangerous"
    BLOCKED = "blocked"

    @property
    def severity(self) -> int:
        """Numeric severity, higher is more severe."""
        return _CATEGORY_SEVERITY[self]


_CATEGORY_SEVERITY = {
    CommandCategory.SAFE: 1,
    CommandCategory.RISKY: 2,
    CommandCategory.DANGEROUS: 3,
    CommandCategory.BLOCKED: 4,
}


class ShellErrorType(Enum):
    """Error taxonomy for shell tool failures."""
    PERMISSION_ERROR = "PERMISSION_ERROR"
    COMMAND_NOT_FOUND = "COMMAND_NOT_FOUND"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    PATH_TRAVERSAL = "PATH_TRAVERSAL"
    INPUT_VALIDATION = "INPUT_VALIDATION"
    COMMAND_BLOCKED = "COMMAND_BLOCKED"
    WORKSPACE_VIOLATION = "WORKSPACE_VIOLATION"
    DANGEROUS_COMMAND = "DANGEROUS_COMMAND"
    SECURITY_ERROR = "SECURITY_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    EXECUTION_ERROR = "EXECUTION_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ConfirmationAction(Enum):
    """Decision returned by a confirmation prompt."""
    ALLOW = "allow"
    DENY = "deny"
    TRUST = "trust"
    BLOCK = "block"


class ConfirmationState(Enum):
    """States of the confirmation flow for one command instance."""
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    TRUSTED = "trusted"
    PERMANENTLY_BLOCKED = "permanently_blocked"

    @property
    def allows_execution(self) -> bool:
        return self in (ConfirmationState.APPROVED, ConfirmationState.TRUSTED)


class SecurityEventType(Enum):
    """Kinds of security events recorded by the audit logger."""
    COMMAND_BLOCKED = "COMMAND_BLOCKED"
    COMMAND_DENIED = "COMMAND_DENIED"
    COMMAND_TRUSTED = "COMMAND_TRUSTED"
    COMMAND_PERMANENTLY_BLOCKED = "COMMAND_PERMANENTLY_BLOCKED"
    DANGEROUS_COMMAND = "DANGEROUS_COMMAND"
    PATH_TRAVERSAL = "PATH_TRAVERSAL"
    WORKSPACE_VIOLATION = "WORKSPACE_VIOLATION"
    INPUT_VALIDATION = "INPUT_VALIDATION"


@dataclass(frozen=True)
class CommandCategorization:
    """Result of categorizing a command.

    Attributes:
        category: The assigned category.
        reason: Human-readable explanation.
        requires_confirmation: Whether the category needs human approval
            under default policy.
        matched_pattern: Regex source of the pattern that fired, if any.
    """
    category: CommandCategory
    reason: str
    requires_confirmation: bool
    matched_pattern: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "reason": self.reason,
            "requiresConfirmation": self.requires_confirmation,
            "matchedPattern": self.matched_pattern,
        }


@dataclass(frozen=True)
class InjectionReport:
    """Outcome of scanning a command for shell expansion and injection."""
    suspicious: bool
    patterns: tuple[str, ...] = ()


@dataclass
class FilterResult:
    """Allow/deny decision from the command filter.

    Attributes:
        allowed: Whether the command may proceed.
        reason: Explanation for a denial (or a forced allow).
        category: Effective category after sanitizer escalation.
        categorization: Raw categorizer output.
        requires_confirmation: Whether the confirmation flow must run.
        trusted: Whether a trusted pattern matched.
        error_type: Error type to report when denied.
        working_directory: Validated working directory.
        warnings: Sanitizer findings that raised the category.
    """
    allowed: bool
    reason: str | None = None
    category: CommandCategory = CommandCategory.RISKY
    categorization: CommandCategorization | None = None
    requires_confirmation: bool = False
    trusted: bool = False
    error_type: ShellErrorType | None = None
    working_directory: str | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ConfirmationRequest:
    """Request handed to a confirmation prompt."""
    command: str
    categorization: CommandCategorization
    working_directory: str
    timeout: float
    session_memory: bool


@dataclass(frozen=True)
class ConfirmationResponse:
    """Terminal decision for one command instance.

    Attributes:
        action: The chosen action.
        remember_decision: Remember an allow/deny for the rest of the session.
        timed_out: Set when no answer arrived before the timeout.
    """
    action: ConfirmationAction
    remember_decision: bool = False
    timed_out: bool = False


@dataclass(frozen=True)
class SecurityEvent:
    """Immutable record of a security decision."""
    timestamp: str
    session_id: str
    command: str
    working_directory: str
    event_type: SecurityEventType
    reason: str
    category: CommandCategory | None = None
    matched_pattern: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "sessionId": self.session_id,
            "command": self.command,
            "workingDirectory": self.working_directory,
            "eventType": self.event_type.value,
            "reason": self.reason,
            "category": self.category.value if self.category else None,
            "matchedPattern": self.matched_pattern,
        }


@dataclass(frozen=True)
class ExecutionRecord:
    """Immutable record of one execution attempt."""
    timestamp: str
    session_id: str
    command: str
    working_directory: str
    exit_code: int
    execution_time_ms: int
    success: bool
    stdout: str = ""
    stderr: str = ""
    category: CommandCategory | None = None
    approval_method: str | None = None
    error_type: ShellErrorType | None = None

    @property
    def recorded_at(self) -> datetime:
        return datetime.fromisoformat(self.timestamp)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["category"] = self.category.value if self.category else None
        data["error_type"] = self.error_type.value if self.error_type else None
        return data


@dataclass
class ExecutionResult:
    """Raw outcome of running one subprocess.

    Attributes:
        stdout: Standard output (may be truncated).
        stderr: Standard error (may be truncated).
        exit_code: Process exit code, or the timeout sentinel.
        duration_ms: Wall-clock duration in milliseconds.
        timed_out: Whether the process was killed on timeout.
        truncated: Whether either stream exceeded the buffer cap.
    """
    stdout: str
    stderr: str
    exit_code: int
    duration_ms: int
    timed_out: bool = False
    truncated: bool = False

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    def to_dict(self) -> dict[str, Any]:
        return {
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
            "timed_out": self.timed_out,
            "truncated": self.truncated,
        }


@dataclass
class CommandMetadata:
    """Descriptive facts about a command, used for audit and display."""
    base_command: str
    category: CommandCategory
    tags: list[str] = field(default_factory=list)
    file_paths: list[str] = field(default_factory=list)
    network: bool = False
    env_variables: list[str] = field(default_factory=list)
