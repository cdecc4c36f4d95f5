"""Confirmation flow for commands that need human approval.

A command enters ``PENDING`` and ends in exactly one terminal state:

- ``allow``  -> ``APPROVED``: run once
- ``deny``   -> ``DENIED``: skip, not an error
- ``trust``  -> ``TRUSTED``: add a literal trusted pattern, run once
- ``block``  -> ``PERMANENTLY_BLOCKED``: add a literal always-block pattern
- no answer before the timeout -> ``DENIED``

Prompt failures are raised as ``ShellConfigurationError`` so the caller
can fail closed.
"""

from __future__ import annotations

import queue
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Protocol

from aiya.logging import Loggers
from aiya.tools.shell.catalog import Limits, Timeouts
from aiya.tools.shell.errors import ShellConfigurationError
from aiya.tools.shell.models import (
    CommandCategorization,
    ConfirmationAction,
    ConfirmationRequest,
    ConfirmationResponse,
    ConfirmationState,
)

if TYPE_CHECKING:
    from aiya.tools.shell.filter import CommandFilter

logger = Loggers.security()


class ConfirmationPrompt(Protocol):
    """Asks a human (or a policy stand-in) to decide on a command."""

    def prompt_user(self, request: ConfirmationRequest) -> ConfirmationResponse:
        ...


class SessionMemory:
    """Remembered allow/deny decisions, keyed by the literal command.

    Entries expire after ``ttl`` seconds; at most ``max_entries`` are kept
    and the oldest is evicted first.
    """

    def __init__(
        self,
        ttl: float = Timeouts.SESSION_MEMORY_TTL,
        max_entries: int = Limits.MAX_SESSION_DECISIONS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._decisions: OrderedDict[str, tuple[ConfirmationAction, float]] = OrderedDict()
        self._lock = threading.Lock()

    def recall(self, command: str) -> ConfirmationAction | None:
        key = command.strip()
        with self._lock:
            entry = self._decisions.get(key)
            if entry is None:
                return None
            action, expires_at = entry
            if self._clock() >= expires_at:
                del self._decisions[key]
                return None
            return action

    def remember(self, command: str, action: ConfirmationAction) -> None:
        key = command.strip()
        with self._lock:
            self._decisions.pop(key, None)
            self._decisions[key] = (action, self._clock() + self.ttl)
            while len(self._decisions) > self.max_entries:
                self._decisions.popitem(last=False)

    def clear_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, (_, expires_at) in self._decisions.items() if now >= expires_at]
            for key in expired:
                del self._decisions[key]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._decisions.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._decisions)


@dataclass(frozen=True)
class ConfirmationOutcome:
    """Terminal result of one confirmation flow.

    Attributes:
        state: Terminal state reached.
        request: The request that was (or would have been) shown.
        response: The prompt's response, None when answered from memory.
        pattern: Pattern added by a trust or block decision.
        from_memory: Whether a remembered decision was reused.
    """
    state: ConfirmationState
    request: ConfirmationRequest
    response: ConfirmationResponse | None = None
    pattern: str | None = None
    from_memory: bool = False

    @property
    def allows_execution(self) -> bool:
        return self.state.allows_execution

    @property
    def timed_out(self) -> bool:
        return self.response is not None and self.response.timed_out


class ConfirmationController:
    """Drives the confirmation state machine for one session."""

    def __init__(
        self,
        command_filter: "CommandFilter",
        prompt: ConfirmationPrompt | None = None,
        memory: SessionMemory | None = None,
    ):
        self.filter = command_filter
        self.prompt = prompt
        self.memory = memory or SessionMemory()

    def confirm(
        self,
        command: str,
        categorization: CommandCategorization,
        working_directory: str,
    ) -> ConfirmationOutcome:
        """Resolve a pending command to a terminal state.

        Raises:
            ShellConfigurationError: If no prompt is configured or the
                prompt fails.
        """
        config = self.filter.get_config()
        request = ConfirmationRequest(
            command=command,
            categorization=categorization,
            working_directory=working_directory,
            timeout=config.confirmation_timeout,
            session_memory=config.session_memory,
        )

        if config.session_memory:
            remembered = self.memory.recall(command)
            if remembered is not None:
                state = (
                    ConfirmationState.APPROVED
                    if remembered is ConfirmationAction.ALLOW
                    else ConfirmationState.DENIED
                )
                logger.info("confirmation_from_memory", command=command, state=state.value)
                return ConfirmationOutcome(state=state, request=request, from_memory=True)

        if self.prompt is None:
            raise ShellConfigurationError(
                "Command requires confirmation but no confirmation prompt is configured"
            )

        response = self._ask(request)
        return self._resolve(request, response)

    def _ask(self, request: ConfirmationRequest) -> ConfirmationResponse:
        # Daemon thread: a prompt still blocked after the timeout must not
        # keep the interpreter alive at exit.
        answers: queue.Queue[tuple[bool, object]] = queue.Queue(maxsize=1)

        def run_prompt() -> None:
            try:
                answers.put((True, self.prompt.prompt_user(request)))
            except Exception as e:
                answers.put((False, e))

        threading.Thread(target=run_prompt, name="aiya-confirm", daemon=True).start()
        try:
            ok, response = answers.get(timeout=request.timeout)
        except queue.Empty:
            logger.warning("confirmation_timeout", command=request.command, timeout=request.timeout)
            return ConfirmationResponse(action=ConfirmationAction.DENY, timed_out=True)

        if not ok:
            raise ShellConfigurationError(f"Confirmation prompt failed: {response}") from response
        if not isinstance(response, ConfirmationResponse):
            raise ShellConfigurationError(
                f"Confirmation prompt returned {type(response).__name__}, expected ConfirmationResponse"
            )
        return response

    def _resolve(
        self, request: ConfirmationRequest, response: ConfirmationResponse
    ) -> ConfirmationOutcome:
        action = response.action
        pattern = None

        if action is ConfirmationAction.ALLOW:
            state = ConfirmationState.APPROVED
        elif action is ConfirmationAction.DENY:
            state = ConfirmationState.DENIED
        elif action is ConfirmationAction.TRUST:
            pattern = self.filter.trust_command(request.command)
            state = ConfirmationState.TRUSTED
        else:
            pattern = self.filter.block_command(request.command)
            state = ConfirmationState.PERMANENTLY_BLOCKED

        remember = (
            request.session_memory
            and response.remember_decision
            and not response.timed_out
            and action in (ConfirmationAction.ALLOW, ConfirmationAction.DENY)
        )
        if remember:
            self.memory.remember(request.command, action)

        logger.info(
            "confirmation_resolved",
            command=request.command,
            state=state.value,
            timed_out=response.timed_out,
            pattern=pattern,
        )
        return ConfirmationOutcome(state=state, request=request, response=response, pattern=pattern)
