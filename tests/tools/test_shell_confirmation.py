"""Tests for the confirmation state machine and session memory."""

import threading
import time

import pytest

from aiya.tools.shell import (
    CommandCategorization,
    CommandCategory,
    CommandFilter,
    ConfirmationAction,
    ConfirmationController,
    ConfirmationResponse,
    ConfirmationState,
    SessionMemory,
    ShellConfigurationError,
    ShellToolConfig,
    WorkspaceBoundaryEnforcer,
)
from tests.conftest import ScriptedPrompt

COMMAND = "git push origin main"
RISKY = CommandCategorization(
    category=CommandCategory.RISKY,
    reason="Git repository modification",
    requires_confirmation=True,
)


@pytest.fixture
def command_filter(workspace_security) -> CommandFilter:
    return CommandFilter(ShellToolConfig(), WorkspaceBoundaryEnforcer(workspace_security))


def confirm(controller: ConfirmationController, command: str = COMMAND):
    return controller.confirm(command, RISKY, "/workspace")


class TestSessionMemory:
    """Tests for remembered decisions."""

    def test_remember_and_recall(self):
        memory = SessionMemory()
        memory.remember("ls", ConfirmationAction.ALLOW)
        assert memory.recall(" ls ") is ConfirmationAction.ALLOW
        assert memory.recall("pwd") is None

    def test_entries_expire(self):
        """Test decisions are forgotten after the TTL."""
        now = [1000.0]
        memory = SessionMemory(ttl=60, clock=lambda: now[0])
        memory.remember("ls", ConfirmationAction.DENY)
        now[0] += 59
        assert memory.recall("ls") is ConfirmationAction.DENY
        now[0] += 1
        assert memory.recall("ls") is None
        assert len(memory) == 0

    def test_clear_expired(self):
        now = [0.0]
        memory = SessionMemory(ttl=10, clock=lambda: now[0])
        memory.remember("a", ConfirmationAction.ALLOW)
        now[0] = 5
        memory.remember("b", ConfirmationAction.ALLOW)
        now[0] = 12
        assert memory.clear_expired() == 1
        assert memory.recall("b") is ConfirmationAction.ALLOW

    def test_oldest_entry_evicted(self):
        memory = SessionMemory(max_entries=2)
        for command in ("a", "b", "c"):
            memory.remember(command, ConfirmationAction.ALLOW)
        assert len(memory) == 2
        assert memory.recall("a") is None
        assert memory.recall("c") is ConfirmationAction.ALLOW

    def test_clear(self):
        memory = SessionMemory()
        memory.remember("a", ConfirmationAction.ALLOW)
        memory.clear()
        assert len(memory) == 0


class TestConfirmationController:
    """Tests for terminal states of the confirmation flow."""

    def test_allow(self, command_filter):
        prompt = ScriptedPrompt(ConfirmationAction.ALLOW)
        outcome = confirm(ConfirmationController(command_filter, prompt))
        assert outcome.state is ConfirmationState.APPROVED
        assert outcome.allows_execution
        assert prompt.requests[0].command == COMMAND
        assert prompt.requests[0].categorization is RISKY

    def test_deny(self, command_filter):
        outcome = confirm(ConfirmationController(command_filter, ScriptedPrompt(ConfirmationAction.DENY)))
        assert outcome.state is ConfirmationState.DENIED
        assert not outcome.allows_execution

    def test_trust_adds_literal_pattern(self, command_filter):
        """Test trust adds an exact-match trusted pattern."""
        outcome = confirm(ConfirmationController(command_filter, ScriptedPrompt(ConfirmationAction.TRUST)))
        assert outcome.state is ConfirmationState.TRUSTED
        assert outcome.allows_execution
        assert command_filter.get_config().trusted_patterns == [outcome.pattern]
        assert command_filter.filter_command(COMMAND).trusted

    def test_block_adds_literal_pattern(self, command_filter):
        outcome = confirm(ConfirmationController(command_filter, ScriptedPrompt(ConfirmationAction.BLOCK)))
        assert outcome.state is ConfirmationState.PERMANENTLY_BLOCKED
        assert not outcome.allows_execution
        assert command_filter.get_config().always_block_patterns == [outcome.pattern]
        assert not command_filter.filter_command(COMMAND).allowed

    def test_timeout_denies(self, command_filter):
        """Test a prompt that does not answer in time resolves to denied."""
        command_filter.update_config(confirmation_timeout=0.2)
        prompt = ScriptedPrompt(ConfirmationAction.ALLOW, delay=2.0)
        start = time.monotonic()
        outcome = confirm(ConfirmationController(command_filter, prompt))
        assert time.monotonic() - start < 1.5
        assert outcome.state is ConfirmationState.DENIED
        assert outcome.timed_out

    def test_abandoned_prompt_does_not_hold_process(self, command_filter):
        """Test a prompt still blocked after the timeout runs on a daemon thread."""
        command_filter.update_config(confirmation_timeout=0.2)
        release = threading.Event()
        seen: list[threading.Thread] = []

        class StuckPrompt:
            def prompt_user(self, request):
                seen.append(threading.current_thread())
                release.wait(5)
                return ConfirmationResponse(ConfirmationAction.ALLOW)

        try:
            outcome = confirm(ConfirmationController(command_filter, StuckPrompt()))
            assert outcome.timed_out
            assert seen and seen[0].daemon
            assert seen[0].is_alive()
        finally:
            release.set()

    def test_prompt_failure_raises_configuration_error(self, command_filter):
        prompt = ScriptedPrompt(error=RuntimeError("terminal closed"))
        with pytest.raises(ShellConfigurationError, match="terminal closed"):
            confirm(ConfirmationController(command_filter, prompt))

    def test_invalid_response_raises_configuration_error(self, command_filter):
        class BadPrompt:
            def prompt_user(self, request):
                return "yes"

        with pytest.raises(ShellConfigurationError, match="expected ConfirmationResponse"):
            confirm(ConfirmationController(command_filter, BadPrompt()))

    def test_missing_prompt_raises_configuration_error(self, command_filter):
        with pytest.raises(ShellConfigurationError, match="no confirmation prompt"):
            confirm(ConfirmationController(command_filter))

    def test_remembered_decision_skips_prompt(self, command_filter):
        """Test a remembered allow is reused without prompting."""
        prompt = ScriptedPrompt(ConfirmationResponse(ConfirmationAction.ALLOW, remember_decision=True))
        controller = ConfirmationController(command_filter, prompt)
        confirm(controller)
        outcome = confirm(controller)
        assert outcome.state is ConfirmationState.APPROVED
        assert outcome.from_memory
        assert len(prompt.requests) == 1

    def test_decision_not_remembered_without_flag(self, command_filter):
        prompt = ScriptedPrompt(ConfirmationAction.ALLOW, ConfirmationAction.DENY)
        controller = ConfirmationController(command_filter, prompt)
        assert confirm(controller).state is ConfirmationState.APPROVED
        assert confirm(controller).state is ConfirmationState.DENIED
        assert len(prompt.requests) == 2

    def test_memory_disabled(self, command_filter):
        command_filter.update_config(session_memory=False)
        prompt = ScriptedPrompt(
            ConfirmationResponse(ConfirmationAction.DENY, remember_decision=True),
            ConfirmationAction.ALLOW,
        )
        controller = ConfirmationController(command_filter, prompt)
        confirm(controller)
        assert confirm(controller).state is ConfirmationState.APPROVED
        assert len(controller.memory) == 0

    def test_request_carries_timeout(self, command_filter):
        command_filter.update_config(confirmation_timeout=12)
        prompt = ScriptedPrompt(ConfirmationAction.DENY)
        confirm(ConfirmationController(command_filter, prompt))
        assert prompt.requests[0].timeout == 12
        assert prompt.requests[0].session_memory
