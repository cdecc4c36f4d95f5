"""Shell tool with a layered security pipeline.

Every command passes through the same layers:
- Layer 1: Input validation and injection detection (sanitizer)
- Layer 2: Categorization into safe, risky, dangerous or blocked
- Layer 3: Workspace boundary enforcement for cwd and paths
- Layer 4: Filtering against the session policy
- Layer 5: User confirmation with session memory
- Layer 6: Execution with timeout and output limits
- Layer 7: Error categorization and audit logging

Usage:
    from aiya.security import WorkspaceSecurity
    from aiya.tools.shell import ShellToolClient

    client = ShellToolClient(WorkspaceSecurity("/project"), prompt=my_prompt)

    # Safe command - runs without asking
    result = client.call_tool("ExecuteCommand", {"command": "ls -la"})

    # Risky command - my_prompt decides
    result = client.call_tool("ExecuteCommand", {"command": "git push origin main"})

    # Blocked command - never runs
    result = client.call_tool("ExecuteCommand", {"command": "rm -rf /"})
    # result.is_error is True, result.error.error_type is COMMAND_BLOCKED
"""

from aiya.tools.shell.audit import AuditConfig, ExecutionLogger
from aiya.tools.shell.boundary import WorkspaceBoundaryEnforcer
from aiya.tools.shell.categorizer import CommandCategorizer
from aiya.tools.shell.client import ExecuteCommandInput, ShellToolClient
from aiya.tools.shell.config import ShellToolConfig
from aiya.tools.shell.confirmation import (
    ConfirmationController,
    ConfirmationOutcome,
    ConfirmationPrompt,
    SessionMemory,
)
from aiya.tools.shell.errors import (
    CategorizedError,
    ErrorCategorizer,
    ErrorContext,
    ShellCommandBlockedError,
    ShellCommandNotFoundError,
    ShellConfigurationError,
    ShellDangerousCommandError,
    ShellExecutionError,
    ShellInputValidationError,
    ShellPathTraversalError,
    ShellPermissionError,
    ShellSecurityError,
    ShellTimeoutError,
    ShellUnknownError,
    ShellWorkspaceViolationError,
)
from aiya.tools.shell.executor import ExecutionEngine
from aiya.tools.shell.filter import CommandFilter
from aiya.tools.shell.models import (
    CommandCategorization,
    CommandCategory,
    CommandMetadata,
    ConfirmationAction,
    ConfirmationRequest,
    ConfirmationResponse,
    ConfirmationState,
    ExecutionRecord,
    ExecutionResult,
    FilterResult,
    InjectionReport,
    SecurityEvent,
    SecurityEventType,
    ShellErrorType,
)
from aiya.tools.shell.sanitizer import CommandSanitizer

__all__ = [
    # Client
    "ShellToolClient",
    "ExecuteCommandInput",
    # Pipeline
    "CommandSanitizer",
    "CommandCategorizer",
    "WorkspaceBoundaryEnforcer",
    "CommandFilter",
    "ConfirmationController",
    "ConfirmationOutcome",
    "ConfirmationPrompt",
    "SessionMemory",
    "ExecutionEngine",
    "ErrorCategorizer",
    "ExecutionLogger",
    # Config
    "ShellToolConfig",
    "AuditConfig",
    # Models
    "CommandCategorization",
    "CommandCategory",
    "CommandMetadata",
    "ConfirmationAction",
    "ConfirmationRequest",
    "ConfirmationResponse",
    "ConfirmationState",
    "ExecutionRecord",
    "ExecutionResult",
    "FilterResult",
    "InjectionReport",
    "SecurityEvent",
    "SecurityEventType",
    "ShellErrorType",
    # Errors
    "CategorizedError",
    "ErrorContext",
    "ShellExecutionError",
    "ShellPermissionError",
    "ShellCommandNotFoundError",
    "ShellTimeoutError",
    "ShellInputValidationError",
    "ShellSecurityError",
    "ShellCommandBlockedError",
    "ShellPathTraversalError",
    "ShellWorkspaceViolationError",
    "ShellDangerousCommandError",
    "ShellConfigurationError",
    "ShellUnknownError",
]
