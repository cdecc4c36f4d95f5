"""Error types and error categorization for the shell tool.

Two kinds of failure exist:

- Pre-execution failures (validation, blocking, workspace violations) are
  raised as ``ShellExecutionError`` subclasses inside the pipeline and
  converted to tool results by the client.
- Post-execution failures are classified by ``ErrorCategorizer`` into a
  ``CategorizedError`` carrying suggestions and a ``retryable`` flag.

The categorizer compares every ``ErrorPattern`` and keeps the matching
pattern with the highest priority. List order does not matter except to
break ties.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

from aiya.constants import OUTPUT_SNIPPET_LENGTH, truncate
from aiya.tools.shell.catalog import ErrorPriority, ExitCode, Timeouts
from aiya.tools.shell.models import ShellErrorType

# Tool names that earn extra hints wherever they appear in a command
_PACKAGE_TOOL = re.compile(r"\b(npm|yarn|pnpm|npx)\b")
_GIT = re.compile(r"\bgit\b")

SEVERITY: dict[ShellErrorType, str] = {
    ShellErrorType.PERMISSION_ERROR: "high",
    ShellErrorType.SECURITY_ERROR: "high",
    ShellErrorType.COMMAND_BLOCKED: "high",
    ShellErrorType.PATH_TRAVERSAL: "high",
    ShellErrorType.WORKSPACE_VIOLATION: "high",
    ShellErrorType.DANGEROUS_COMMAND: "high",
    ShellErrorType.TIMEOUT_ERROR: "medium",
    ShellErrorType.CONFIGURATION_ERROR: "medium",
    ShellErrorType.INPUT_VALIDATION: "medium",
    ShellErrorType.COMMAND_NOT_FOUND: "low",
    ShellErrorType.EXECUTION_ERROR: "low",
    ShellErrorType.UNKNOWN_ERROR: "low",
}


def _format_user_message(message: str, suggestions: Sequence[str]) -> str:
    if not suggestions:
        return message
    lines = [message, "", "Suggestions:"]
    lines.extend(f"  {i}. {s}" for i, s in enumerate(suggestions, 1))
    return "\n".join(lines)


@dataclass
class ErrorContext:
    """Where and how a failure happened."""
    command: str = ""
    working_directory: str = ""
    exit_code: int | None = None
    execution_time_ms: int | None = None
    stdout: str = ""
    stderr: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "workingDirectory": self.working_directory,
            "exitCode": self.exit_code,
            "executionTime": self.execution_time_ms,
            "stdout": truncate(self.stdout, OUTPUT_SNIPPET_LENGTH),
            "stderr": truncate(self.stderr, OUTPUT_SNIPPET_LENGTH),
            "timestamp": self.timestamp,
        }


class ShellExecutionError(Exception):
    """Base error for shell tool failures.

    Subclasses fix the error type and its defaults.

    Attributes:
        message: Human-readable error message
        error_type: Machine-readable error type
        context: Command and environment details
        suggestions: Remediation hints
        retryable: Whether re-invoking the command might succeed
        exit_code: Exit code reported for this failure
    """

    error_type = ShellErrorType.UNKNOWN_ERROR
    default_exit_code = ExitCode.GENERAL_ERROR
    default_retryable = False
    default_suggestions: tuple[str, ...] = ()

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        suggestions: Sequence[str] | None = None,
        retryable: bool | None = None,
        exit_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.suggestions = list(suggestions) if suggestions is not None else list(self.default_suggestions)
        self.retryable = self.default_retryable if retryable is None else retryable
        self.exit_code = self.default_exit_code if exit_code is None else exit_code

    @property
    def severity(self) -> str:
        return SEVERITY[self.error_type]

    def user_friendly_message(self) -> str:
        return _format_user_message(self.message, self.suggestions)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "message": self.message,
            "errorType": self.error_type.value,
            "severity": self.severity,
            "retryable": self.retryable,
            "exitCode": self.exit_code,
            "suggestions": self.suggestions,
            "context": self.context.to_dict(),
        }


class ShellPermissionError(ShellExecutionError):
    error_type = ShellErrorType.PERMISSION_ERROR
    default_exit_code = ExitCode.PERMISSION_DENIED
    default_suggestions = ("Check file and directory permissions",)


class ShellCommandNotFoundError(ShellExecutionError):
    error_type = ShellErrorType.COMMAND_NOT_FOUND
    default_exit_code = ExitCode.COMMAND_NOT_FOUND
    default_suggestions = ("Check the command spelling", "Verify the program is installed")


class ShellTimeoutError(ShellExecutionError):
    error_type = ShellErrorType.TIMEOUT_ERROR
    default_exit_code = ExitCode.TIMEOUT
    default_retryable = True
    default_suggestions = ("Increase the timeout or split the command into smaller steps",)


class ShellInputValidationError(ShellExecutionError):
    error_type = ShellErrorType.INPUT_VALIDATION
    default_exit_code = ExitCode.INPUT_VALIDATION
    default_suggestions = ("Check the command and its parameters",)


class ShellSecurityError(ShellExecutionError):
    error_type = ShellErrorType.SECURITY_ERROR
    default_exit_code = ExitCode.SECURITY_VIOLATION
    default_suggestions = ("Use a safer alternative command",)


class ShellCommandBlockedError(ShellSecurityError):
    error_type = ShellErrorType.COMMAND_BLOCKED
    default_suggestions = (
        "This command is blocked by security policy",
        "Use a safer alternative that stays inside the workspace",
    )


class ShellPathTraversalError(ShellSecurityError):
    error_type = ShellErrorType.PATH_TRAVERSAL
    default_suggestions = (
        "Use paths relative to the workspace root",
        "Remove '..' segments from paths",
    )


class ShellWorkspaceViolationError(ShellSecurityError):
    error_type = ShellErrorType.WORKSPACE_VIOLATION
    default_suggestions = (
        "Keep the working directory and all paths inside the workspace",
    )


class ShellDangerousCommandError(ShellSecurityError):
    error_type = ShellErrorType.DANGEROUS_COMMAND
    default_suggestions = (
        "Dangerous commands are disabled in configuration",
        "Enable allow_dangerous or add a trusted pattern to permit this command",
    )


class ShellConfigurationError(ShellExecutionError):
    error_type = ShellErrorType.CONFIGURATION_ERROR
    default_exit_code = ExitCode.INPUT_VALIDATION
    default_suggestions = ("Check the shell tool configuration",)


class ShellUnknownError(ShellExecutionError):
    error_type = ShellErrorType.UNKNOWN_ERROR


@dataclass(frozen=True)
class ErrorPattern:
    """Static rule used by the error categorizer."""
    error_type: ShellErrorType
    priority: int
    retryable: bool
    suggestions: tuple[str, ...]
    message_patterns: tuple[re.Pattern[str], ...] = ()
    stderr_patterns: tuple[re.Pattern[str], ...] = ()
    exit_codes: frozenset[int] = frozenset()

    def matches(self, message: str, stderr: str, exit_code: int | None) -> bool:
        if any(p.search(message) for p in self.message_patterns):
            return True
        if stderr and any(p.search(stderr) for p in self.stderr_patterns):
            return True
        return exit_code is not None and exit_code in self.exit_codes


def _rx(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


ERROR_PATTERNS: tuple[ErrorPattern, ...] = (
    ErrorPattern(
        error_type=ShellErrorType.PERMISSION_ERROR,
        priority=ErrorPriority.PERMISSION,
        retryable=False,
        message_patterns=_rx(r"permission denied", r"access denied", r"operation not permitted", r"\bEACCES\b", r"\bEPERM\b"),
        stderr_patterns=_rx(r"permission denied", r"operation not permitted", r"access denied"),
        exit_codes=frozenset({ExitCode.PERMISSION_DENIED}),
        suggestions=(
            "Check file and directory permissions",
            "Verify the current user can access the target",
            "Adjust permissions inside the workspace instead of elevating privileges",
        ),
    ),
    ErrorPattern(
        error_type=ShellErrorType.TIMEOUT_ERROR,
        priority=ErrorPriority.TIMEOUT,
        retryable=True,
        message_patterns=_rx(r"timed?\s*out", r"\bETIMEDOUT\b", r"deadline exceeded"),
        stderr_patterns=_rx(r"timed?\s*out"),
        exit_codes=frozenset({ExitCode.TIMEOUT}),
        suggestions=(
            f"Increase the timeout parameter (maximum {Timeouts.MAX_COMMAND_EXECUTION} seconds)",
            "Break the command into smaller steps",
            "Check whether the command waits for interactive input",
        ),
    ),
    ErrorPattern(
        error_type=ShellErrorType.COMMAND_NOT_FOUND,
        priority=ErrorPriority.NOT_FOUND,
        retryable=False,
        message_patterns=_rx(r"command not found", r"\bENOENT\b"),
        stderr_patterns=_rx(r"command not found", r"not found", r"no such file or directory"),
        exit_codes=frozenset({ExitCode.COMMAND_NOT_FOUND}),
        suggestions=(
            "Check the command spelling",
            "Verify the program is installed and on PATH",
            "Check that referenced files exist",
        ),
    ),
    ErrorPattern(
        error_type=ShellErrorType.PATH_TRAVERSAL,
        priority=ErrorPriority.SECURITY,
        retryable=False,
        message_patterns=_rx(r"path traversal", r"parent directory reference"),
        exit_codes=frozenset({ExitCode.SECURITY_VIOLATION}),
        suggestions=(
            "Use paths relative to the workspace root",
            "Remove '..' segments from paths",
        ),
    ),
    ErrorPattern(
        error_type=ShellErrorType.COMMAND_BLOCKED,
        priority=ErrorPriority.SECURITY,
        retryable=False,
        message_patterns=_rx(r"\bblocked\b", r"not allowed", r"security polic"),
        exit_codes=frozenset({ExitCode.SECURITY_VIOLATION}),
        suggestions=(
            "This command is blocked by security policy",
            "Use a safer alternative command",
        ),
    ),
    ErrorPattern(
        error_type=ShellErrorType.WORKSPACE_VIOLATION,
        priority=ErrorPriority.WORKSPACE,
        retryable=False,
        message_patterns=_rx(r"outside (?:the )?workspace", r"workspace (?:boundary|violation)"),
        exit_codes=frozenset({ExitCode.SECURITY_VIOLATION}),
        suggestions=(
            "Keep the working directory and all paths inside the workspace",
        ),
    ),
    ErrorPattern(
        error_type=ShellErrorType.INPUT_VALIDATION,
        priority=ErrorPriority.INPUT_VALIDATION,
        retryable=False,
        message_patterns=_rx(r"invalid (?:input|argument|option|parameter)", r"validation failed"),
        stderr_patterns=_rx(r"invalid option", r"illegal option", r"unrecognized option", r"^usage:"),
        exit_codes=frozenset({ExitCode.INPUT_VALIDATION}),
        suggestions=(
            "Check the command syntax and options",
            "Consult the command's --help output",
        ),
    ),
    ErrorPattern(
        error_type=ShellErrorType.CONFIGURATION_ERROR,
        priority=ErrorPriority.CONFIGURATION,
        retryable=False,
        message_patterns=_rx(r"configuration (?:error|invalid)", r"invalid (?:config|setting)"),
        stderr_patterns=_rx(r"configuration (?:error|invalid)", r"missing config"),
        exit_codes=frozenset({ExitCode.INPUT_VALIDATION}),
        suggestions=(
            "Check configuration files for the tool being run",
            "Verify required environment variables are set",
        ),
    ),
    ErrorPattern(
        error_type=ShellErrorType.EXECUTION_ERROR,
        priority=ErrorPriority.EXECUTION,
        retryable=True,
        message_patterns=_rx(r"error|failed|exception|abort|crash"),
        stderr_patterns=_rx(r"error|exception|abort|crash|fatal"),
        exit_codes=frozenset({1, 2, 3, 4, 5}),
        suggestions=(
            "Review the command output for details",
            "Verify command arguments and input files",
        ),
    ),
)

UNKNOWN_ERROR_SUGGESTIONS: tuple[str, ...] = (
    "Review the command and its output",
    "Try a simpler form of the command",
)


@dataclass
class CategorizedError:
    """Typed classification of a failure, as seen by the agent layer."""
    error_type: ShellErrorType
    message: str
    context: ErrorContext
    suggestions: list[str]
    retryable: bool
    exit_code: int | None = None

    @property
    def severity(self) -> str:
        return SEVERITY[self.error_type]

    def user_friendly_message(self) -> str:
        return _format_user_message(self.message, self.suggestions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "errorType": self.error_type.value,
            "severity": self.severity,
            "retryable": self.retryable,
            "exitCode": self.exit_code,
            "suggestions": self.suggestions,
            "context": self.context.to_dict(),
        }

    @classmethod
    def from_exception(cls, error: ShellExecutionError) -> "CategorizedError":
        """Wrap a pre-execution error raised inside the pipeline."""
        return cls(
            error_type=error.error_type,
            message=error.message,
            context=error.context,
            suggestions=list(error.suggestions),
            retryable=error.retryable,
            exit_code=error.exit_code,
        )


class ErrorCategorizer:
    """Classifies execution failures by highest-priority pattern match.

    Example:
        categorizer = ErrorCategorizer()
        error = categorizer.categorize(
            "Command failed with exit code 127", exit_code=127,
            stderr="sh: 1: foo: not found", command="foo",
        )
        error.error_type  # ShellErrorType.COMMAND_NOT_FOUND
    """

    def __init__(self, patterns: Sequence[ErrorPattern] = ERROR_PATTERNS):
        self.patterns = tuple(patterns)

    def find_best_match(
        self,
        message: str,
        stderr: str = "",
        exit_code: int | None = None,
    ) -> ErrorPattern | None:
        """Return the matching pattern with the highest priority.

        Ties keep the earlier pattern.
        """
        best: ErrorPattern | None = None
        for pattern in self.patterns:
            if not pattern.matches(message, stderr, exit_code):
                continue
            if best is None or pattern.priority > best.priority:
                best = pattern
        return best

    def categorize(
        self,
        error: str | BaseException | None,
        exit_code: int | None = None,
        stdout: str = "",
        stderr: str = "",
        command: str = "",
        working_directory: str = "",
        execution_time_ms: int | None = None,
    ) -> CategorizedError:
        """Classify one failure.

        Args:
            error: Error message or exception describing the failure.
            exit_code: Process exit code, or the timeout sentinel.
            stdout: Captured standard output.
            stderr: Captured standard error.
            command: The command that failed.
            working_directory: Where it ran.
            execution_time_ms: How long it ran.

        Returns:
            CategorizedError with enhanced suggestions.
        """
        message = str(error) if error is not None else ""
        if not message:
            message = f"Command failed with exit code {exit_code}"

        context = ErrorContext(
            command=command,
            working_directory=working_directory,
            exit_code=exit_code,
            execution_time_ms=execution_time_ms,
            stdout=stdout,
            stderr=stderr,
        )

        match = self.find_best_match(message, stderr, exit_code)
        if match is None:
            return CategorizedError(
                error_type=ShellErrorType.UNKNOWN_ERROR,
                message=message,
                context=context,
                suggestions=self.enhance_suggestions(list(UNKNOWN_ERROR_SUGGESTIONS), context),
                retryable=False,
                exit_code=exit_code,
            )

        return CategorizedError(
            error_type=match.error_type,
            message=message,
            context=context,
            suggestions=self.enhance_suggestions(list(match.suggestions), context),
            retryable=match.retryable,
            exit_code=exit_code,
        )

    def enhance_suggestions(self, suggestions: list[str], context: ErrorContext) -> list[str]:
        """Append hints derived from the exit code, duration and command."""
        extra: list[str] = []
        if context.exit_code == ExitCode.COMMAND_NOT_FOUND:
            extra.append("Check if the command is installed in your system")
        elif context.exit_code == ExitCode.PERMISSION_DENIED:
            extra.append("Check if the file has executable permissions (chmod +x)")

        if context.execution_time_ms and context.execution_time_ms > Timeouts.DEFAULT_COMMAND_EXECUTION * 1000:
            extra.append("Consider increasing the timeout for long-running commands")

        package_tool = _PACKAGE_TOOL.search(context.command)
        if package_tool:
            extra.append(f"Run '{package_tool.group(1)}' with --verbose for more detail")
            extra.append("Try removing node_modules and reinstalling dependencies")
        if _GIT.search(context.command):
            extra.append("Check if you are in a git repository")
            extra.append("Verify git configuration and credentials")

        result: list[str] = []
        for suggestion in suggestions + extra:
            if suggestion not in result:
                result.append(suggestion)
        return result


_ERROR_CLASSES: dict[ShellErrorType, type[ShellExecutionError]] = {
    cls.error_type: cls
    for cls in (
        ShellPermissionError,
        ShellCommandNotFoundError,
        ShellTimeoutError,
        ShellInputValidationError,
        ShellSecurityError,
        ShellCommandBlockedError,
        ShellPathTraversalError,
        ShellWorkspaceViolationError,
        ShellDangerousCommandError,
        ShellConfigurationError,
        ShellUnknownError,
    )
}


def error_for_type(
    error_type: ShellErrorType,
    message: str,
    context: ErrorContext | None = None,
) -> ShellExecutionError:
    """Build the exception class matching an error type."""
    cls = _ERROR_CLASSES.get(error_type, ShellUnknownError)
    return cls(message, context=context)
