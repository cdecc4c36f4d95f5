"""Shell tool client: the ``ExecuteCommand`` tool exposed to the agent.

One client instance is one session. It owns the session's policy config,
confirmation memory and audit log, and turns every outcome into a
``ToolResult``. Nothing raises across ``call_tool``.

Flow per call:
    filter -> (confirm) -> execute -> (categorize error) -> audit
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, ValidationError

from aiya.logging import Loggers, session_context
from aiya.security.workspace import WorkspaceSecurity
from aiya.tools.base import ToolDefinition, ToolResult
from aiya.tools.shell.audit import ExecutionLogger
from aiya.tools.shell.boundary import WorkspaceBoundaryEnforcer
from aiya.tools.shell.catalog import Timeouts
from aiya.tools.shell.confirmation import ConfirmationController, ConfirmationPrompt
from aiya.tools.shell.config import ShellToolConfig
from aiya.tools.shell.errors import (
    CategorizedError,
    ErrorCategorizer,
    ErrorContext,
    ShellConfigurationError,
    ShellExecutionError,
    ShellInputValidationError,
    ShellSecurityError,
    ShellUnknownError,
    error_for_type,
)
from aiya.tools.shell.executor import ExecutionEngine
from aiya.tools.shell.filter import CommandFilter
from aiya.tools.shell.models import (
    CommandCategorization,
    ConfirmationState,
    FilterResult,
    SecurityEventType,
    ShellErrorType,
)
from aiya.tools.shell.sanitizer import CommandSanitizer

if TYPE_CHECKING:
    from aiya.config import AiyaSettings

NO_OUTPUT_MESSAGE = "Command executed successfully (no output)"

_EVENT_FOR_ERROR: dict[ShellErrorType, SecurityEventType] = {
    ShellErrorType.COMMAND_BLOCKED: SecurityEventType.COMMAND_BLOCKED,
    ShellErrorType.DANGEROUS_COMMAND: SecurityEventType.DANGEROUS_COMMAND,
    ShellErrorType.PATH_TRAVERSAL: SecurityEventType.PATH_TRAVERSAL,
    ShellErrorType.WORKSPACE_VIOLATION: SecurityEventType.WORKSPACE_VIOLATION,
    ShellErrorType.INPUT_VALIDATION: SecurityEventType.INPUT_VALIDATION,
}


class ExecuteCommandInput(BaseModel):
    """Arguments of the ExecuteCommand tool."""

    command: str = Field(..., description="The shell command to execute")
    cwd: str | None = Field(
        default=None,
        description="Working directory, relative to the workspace root or absolute inside it",
    )
    timeout: float = Field(
        default=Timeouts.DEFAULT_COMMAND_EXECUTION,
        description=f"Timeout in seconds (maximum {Timeouts.MAX_COMMAND_EXECUTION})",
    )


class ShellToolClient:
    """Secure shell execution for one agent session.

    Example:
        client = ShellToolClient(WorkspaceSecurity("/path/to/project"), prompt=my_prompt)
        result = client.call_tool("ExecuteCommand", {"command": "ls -la"})
        result.is_error  # False
    """

    TOOL_NAME = "ExecuteCommand"
    TOOL_ALIASES = ("RunCommand",)
    TOOL_DESCRIPTION = (
        "Execute a shell command inside the workspace. Commands are categorized "
        "as safe, risky, dangerous or blocked; risky and dangerous commands may "
        "require user confirmation and blocked commands never run."
    )

    def __init__(
        self,
        workspace: WorkspaceSecurity,
        config: ShellToolConfig | None = None,
        prompt: ConfirmationPrompt | None = None,
        engine: ExecutionEngine | None = None,
        audit: ExecutionLogger | None = None,
        session_id: str | None = None,
    ):
        config = config or ShellToolConfig()
        self.session_id = session_id or (audit.session_id if audit else str(uuid.uuid4()))
        self.audit = audit or ExecutionLogger(session_id=self.session_id)
        self.workspace = workspace
        self.sanitizer = CommandSanitizer()
        self.boundary = WorkspaceBoundaryEnforcer(workspace, self.sanitizer)
        self.filter = CommandFilter(config, self.boundary, sanitizer=self.sanitizer)
        self.confirmation = ConfirmationController(self.filter, prompt)
        self.engine = engine or ExecutionEngine(max_output_bytes=config.max_output_bytes)
        self.error_categorizer = ErrorCategorizer()
        self._log = Loggers.shell().bind(session_id=self.session_id)

    @classmethod
    def from_settings(
        cls,
        settings: "AiyaSettings",
        prompt: ConfirmationPrompt | None = None,
    ) -> "ShellToolClient":
        """Build a session from application settings."""
        audit = ExecutionLogger(settings.audit_config())
        return cls(
            WorkspaceSecurity(settings.workspace_root),
            config=settings.load_shell_config(),
            prompt=prompt,
            audit=audit,
        )

    # ------------------------------------------------------------------
    # Tool contract
    # ------------------------------------------------------------------

    def list_tools(self) -> list[ToolDefinition]:
        return [
            ToolDefinition(
                name=self.TOOL_NAME,
                description=self.TOOL_DESCRIPTION,
                input_schema=ExecuteCommandInput.model_json_schema(),
                aliases=self.TOOL_ALIASES,
            )
        ]

    def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> ToolResult:
        """Invoke a tool by name. Always returns a ToolResult."""
        if name != self.TOOL_NAME and name not in self.TOOL_ALIASES:
            return self._error_result(ShellInputValidationError(f"Unknown tool: {name}"))

        try:
            params = ExecuteCommandInput.model_validate(arguments or {})
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            return self._error_result(
                ShellInputValidationError(f"Invalid arguments for {name}: {problems}")
            )

        with session_context(self.session_id, tool=name):
            try:
                return self.execute_command_with_confirmation(params.command, params.cwd, params.timeout)
            except ShellExecutionError as e:
                return self._error_result(e)
            except Exception as e:
                self._log.exception("shell_tool_failed", command=params.command)
                return self._error_result(ShellUnknownError(f"Unexpected error: {e}"))

    # ------------------------------------------------------------------
    # Execution paths
    # ------------------------------------------------------------------

    def execute_command_with_confirmation(
        self,
        command: str,
        cwd: str | None = None,
        timeout: float | None = None,
    ) -> ToolResult:
        """Filter, confirm if needed, then execute."""
        if timeout is None:
            timeout = self.filter.get_config().max_execution_time
        invalid = self._check_timeout(command, timeout)
        if invalid is not None:
            return invalid

        decision = self.filter.filter_command(command, cwd)
        if not decision.allowed:
            return self._filter_denied(command, cwd, decision)

        stripped = command.strip()
        if not decision.requires_confirmation:
            method = "trusted_pattern" if decision.trusted else "automatic"
            return self._run(stripped, decision, timeout, method)

        categorization = CommandCategorization(
            category=decision.category,
            reason=decision.reason or decision.categorization.reason,
            requires_confirmation=True,
            matched_pattern=decision.categorization.matched_pattern,
        )
        try:
            outcome = self.confirmation.confirm(stripped, categorization, decision.working_directory)
        except ShellConfigurationError as e:
            self.audit.log_security_event(
                SecurityEventType.COMMAND_BLOCKED,
                stripped,
                decision.working_directory,
                f"Confirmation system failure, command denied: {e.message}",
                category=decision.category,
            )
            e.context = ErrorContext(command=stripped, working_directory=decision.working_directory)
            return self._error_result(e)

        state = outcome.state
        if state is ConfirmationState.DENIED:
            reason = "Confirmation timed out" if outcome.timed_out else "Denied by user"
            self.audit.log_security_event(
                SecurityEventType.COMMAND_DENIED, stripped, decision.working_directory,
                reason, category=decision.category,
            )
            return ToolResult.ok(f"Command execution denied ({reason.lower()}): {stripped}", denied=True)

        if state is ConfirmationState.PERMANENTLY_BLOCKED:
            self.audit.log_security_event(
                SecurityEventType.COMMAND_PERMANENTLY_BLOCKED, stripped, decision.working_directory,
                "Blocked by user for this session", category=decision.category,
                matched_pattern=outcome.pattern,
            )
            return ToolResult.ok(
                f"Command blocked and added to the always-block list: {stripped}", denied=True
            )

        if state is ConfirmationState.TRUSTED:
            self.audit.log_security_event(
                SecurityEventType.COMMAND_TRUSTED, stripped, decision.working_directory,
                "Trusted by user for this session", category=decision.category,
                matched_pattern=outcome.pattern,
            )
            return self.execute_command(stripped, cwd, timeout, bypass_filter=True, approval_method="trusted")

        method = "session_memory" if outcome.from_memory else "user"
        return self._run(stripped, decision, timeout, method, requires_confirmation=True)

    def execute_command(
        self,
        command: str,
        cwd: str | None = None,
        timeout: float | None = None,
        bypass_filter: bool = False,
        approval_method: str = "automatic",
    ) -> ToolResult:
        """Execute without prompting.

        With ``bypass_filter`` only the unconditional checks run (input,
        working directory, blocked tier, always-block, workspace paths).
        Without it, a command that needs confirmation is refused.
        """
        if timeout is None:
            timeout = self.filter.get_config().max_execution_time
        invalid = self._check_timeout(command, timeout)
        if invalid is not None:
            return invalid

        if bypass_filter:
            decision = self.filter.enforce_unconditional(command, cwd)
        else:
            decision = self.filter.filter_command(command, cwd)
        if not decision.allowed:
            return self._filter_denied(command, cwd, decision)

        if decision.requires_confirmation and not bypass_filter:
            return self._error_result(
                ShellSecurityError(
                    f"Command requires confirmation ({decision.category.value}): {command.strip()}",
                    context=ErrorContext(command=command.strip(), working_directory=decision.working_directory),
                )
            )
        return self._run(
            command.strip(), decision, timeout, approval_method,
            requires_confirmation=bypass_filter,
        )

    def _run(
        self,
        command: str,
        decision: FilterResult,
        timeout: float,
        approval_method: str,
        requires_confirmation: bool = False,
    ) -> ToolResult:
        cwd = decision.working_directory
        category = decision.category

        try:
            result = self.engine.run(command, cwd, timeout)
        except ShellInputValidationError as e:
            e.context = ErrorContext(command=command, working_directory=cwd)
            self.audit.log_execution(
                command, cwd, e.exit_code, 0, False, stderr=e.message,
                category=category, approval_method=approval_method, error_type=e.error_type,
            )
            return self._error_result(e)

        if result.success:
            self.audit.log_execution(
                command, cwd, result.exit_code, result.duration_ms, True,
                stdout=result.stdout, stderr=result.stderr,
                category=category, approval_method=approval_method,
            )
            payload = {
                "output": self._combine_output(result.stdout, result.stderr),
                "security": {
                    "category": category.value,
                    "requiresConfirmation": requires_confirmation,
                    "approved": True,
                    "approvalMethod": approval_method,
                    "executionTime": result.duration_ms,
                    "workingDirectory": cwd,
                },
                "command": command,
                "timestamp": datetime.now().isoformat(),
                "exitCode": result.exit_code,
            }
            if result.truncated:
                payload["truncated"] = True
            return ToolResult.ok(json.dumps(payload, indent=2))

        message = (
            f"Command timed out after {timeout:g} seconds"
            if result.timed_out
            else f"Command failed with exit code {result.exit_code}"
        )
        categorized = self.error_categorizer.categorize(
            message,
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
            command=command,
            working_directory=cwd,
            execution_time_ms=result.duration_ms,
        )
        self.audit.log_execution(
            command, cwd, result.exit_code, result.duration_ms, False,
            stdout=result.stdout, stderr=result.stderr,
            category=category, approval_method=approval_method,
            error_type=categorized.error_type,
        )
        return ToolResult.fail(self._failure_text(categorized, result.stdout, result.stderr), error=categorized)

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def _filter_denied(self, command: str, cwd: str | None, decision: FilterResult) -> ToolResult:
        error_type = decision.error_type or ShellErrorType.SECURITY_ERROR
        working_directory = decision.working_directory or (cwd or str(self.boundary.workspace_root))
        stripped = command.strip() if isinstance(command, str) else ""
        categorization = decision.categorization

        self.audit.log_security_event(
            _EVENT_FOR_ERROR.get(error_type, SecurityEventType.COMMAND_BLOCKED),
            stripped,
            working_directory,
            decision.reason or "Denied by command filter",
            category=decision.category if categorization else None,
            matched_pattern=categorization.matched_pattern if categorization else None,
        )
        error = error_for_type(
            error_type,
            decision.reason or "Command denied by security policy",
            ErrorContext(command=stripped, working_directory=working_directory),
        )
        return self._error_result(error)

    def _check_timeout(self, command: str, timeout: float) -> ToolResult | None:
        """Reject a bad timeout before filtering, prompting or spawning."""
        try:
            self.engine.validate_timeout(timeout)
        except ShellInputValidationError as e:
            stripped = command.strip() if isinstance(command, str) else ""
            working_directory = str(self.boundary.workspace_root)
            self.audit.log_security_event(
                SecurityEventType.INPUT_VALIDATION, stripped, working_directory, e.message
            )
            e.context = ErrorContext(command=stripped, working_directory=working_directory)
            return self._error_result(e)
        return None

    def _error_result(self, error: ShellExecutionError) -> ToolResult:
        categorized = CategorizedError.from_exception(error)
        header = {
            ShellErrorType.COMMAND_BLOCKED: "Command blocked",
            ShellErrorType.DANGEROUS_COMMAND: "Dangerous command rejected",
            ShellErrorType.WORKSPACE_VIOLATION: "Workspace violation",
            ShellErrorType.PATH_TRAVERSAL: "Path traversal rejected",
            ShellErrorType.INPUT_VALIDATION: "Invalid input",
            ShellErrorType.CONFIGURATION_ERROR: "Configuration error",
        }.get(error.error_type, "Error")
        return ToolResult.fail(f"{header}: {categorized.user_friendly_message()}", error=categorized)

    @staticmethod
    def _combine_output(stdout: str, stderr: str) -> str:
        if not stdout and not stderr:
            return NO_OUTPUT_MESSAGE
        if not stderr:
            return stdout
        return f"{stdout}\nSTDERR:\n{stderr}" if stdout else f"STDERR:\n{stderr}"

    @staticmethod
    def _failure_text(error: CategorizedError, stdout: str, stderr: str) -> str:
        parts = [f"{error.message} [{error.error_type.value}]"]
        if stdout:
            parts.append(f"STDOUT:\n{stdout}")
        if stderr:
            parts.append(f"STDERR:\n{stderr}")
        if error.suggestions:
            parts.append("Suggestions:\n" + "\n".join(f"  {i}. {s}" for i, s in enumerate(error.suggestions, 1)))
        parts.append(f"Retryable: {'yes' if error.retryable else 'no'}")
        return "\n\n".join(parts)

    # ------------------------------------------------------------------
    # Configuration and audit surface
    # ------------------------------------------------------------------

    def get_configuration(self) -> dict[str, Any]:
        return self.filter.get_config().to_dict()

    def update_configuration(self, **changes: Any) -> dict[str, Any]:
        """Update the session config. Raises ShellConfigurationError on bad input."""
        return self.filter.update_config(**changes).to_dict()

    def categorize(self, command: str) -> CommandCategorization:
        return self.filter.categorize(command)

    def get_security_summary(self) -> dict[str, Any]:
        return self.audit.get_security_summary()

    def get_security_events(self, limit: int | None = None) -> list[dict[str, Any]]:
        return [event.to_dict() for event in self.audit.get_security_events(limit)]

    def export_security_report(self) -> str:
        return self.audit.export_security_report()

    @property
    def workspace_root(self) -> Path:
        return self.boundary.workspace_root
