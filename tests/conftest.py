"""Shared test fixtures and utilities for aiya tests.

Provides:
- Temporary workspace fixtures
- ScriptedPrompt, a confirmation prompt that replays queued answers
- A factory for shell tool clients bound to the temporary workspace
"""

import time
from pathlib import Path
from typing import Callable

import pytest

from aiya.security import WorkspaceSecurity
from aiya.tools.shell import (
    ConfirmationAction,
    ConfirmationRequest,
    ConfirmationResponse,
    ShellToolClient,
    ShellToolConfig,
)


class ScriptedPrompt:
    """Confirmation prompt that returns queued responses in order.

    Records every request it receives. When the queue runs dry the
    ``default`` action is returned.

    Usage:
        prompt = ScriptedPrompt(ConfirmationAction.TRUST)
        client = make_client(prompt=prompt)
        client.call_tool("ExecuteCommand", {"command": "git status"})
        assert len(prompt.requests) == 1
    """

    def __init__(
        self,
        *responses: ConfirmationAction | ConfirmationResponse,
        default: ConfirmationAction = ConfirmationAction.DENY,
        delay: float = 0.0,
        error: Exception | None = None,
    ):
        self._queue = [
            r if isinstance(r, ConfirmationResponse) else ConfirmationResponse(action=r)
            for r in responses
        ]
        self.default = default
        self.delay = delay
        self.error = error
        self.requests: list[ConfirmationRequest] = []

    def prompt_user(self, request: ConfirmationRequest) -> ConfirmationResponse:
        self.requests.append(request)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self._queue:
            return self._queue.pop(0)
        return ConfirmationResponse(action=self.default)


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace with a small project layout."""
    workspace = tmp_path / "workspace"
    (workspace / "src").mkdir(parents=True)
    (workspace / "src" / "main.py").write_text("print('hello')\n")
    (workspace / "README.md").write_text("# demo\n")
    return workspace.resolve()


@pytest.fixture
def workspace_security(temp_workspace: Path) -> WorkspaceSecurity:
    return WorkspaceSecurity(temp_workspace)


@pytest.fixture
def make_client(workspace_security: WorkspaceSecurity) -> Callable[..., ShellToolClient]:
    """Factory for clients bound to the temporary workspace.

    Keyword arguments other than ``prompt`` are applied to a fresh
    ShellToolConfig.
    """

    def _make(prompt=None, **config_overrides) -> ShellToolClient:
        config = ShellToolConfig(**config_overrides)
        return ShellToolClient(workspace_security, config=config, prompt=prompt)

    return _make
