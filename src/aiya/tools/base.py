"""Tool contract types shared by aiya tools.

Provides:
- ToolDefinition: Name, description and JSON input schema of a tool
- ToolResult: Content blocks plus an ``isError`` flag, the shape the
  agent's tool-calling layer consumes
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from aiya.tools.shell.errors import CategorizedError


@dataclass(frozen=True)
class ToolDefinition:
    """Tool metadata advertised to the agent.

    Attributes:
        name: Tool name
        description: Human-readable description
        input_schema: JSON schema of the tool arguments
        aliases: Other names the tool answers to
    """

    name: str
    description: str
    input_schema: dict[str, Any]
    aliases: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


@dataclass
class ToolResult:
    """Standard result wrapper for tool outputs.

    Errors travel as data: ``is_error`` is set and ``error`` carries the
    categorized failure (with its ``retryable`` flag) when one exists.
    """

    content: list[dict[str, Any]]
    is_error: bool = False
    error: "CategorizedError | None" = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        """Concatenated text of all text content blocks."""
        return "\n".join(
            block.get("text", "") for block in self.content if block.get("type") == "text"
        )

    @property
    def retryable(self) -> bool:
        return self.error.retryable if self.error is not None else False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result: dict[str, Any] = {"content": self.content, "isError": self.is_error}
        if self.error is not None:
            result["error"] = self.error.to_dict()
        if self.metadata:
            result["metadata"] = self.metadata
        return result

    @classmethod
    def ok(cls, text: str, **metadata: Any) -> "ToolResult":
        """Create a successful text result."""
        return cls(content=[{"type": "text", "text": text}], metadata=metadata)

    @classmethod
    def fail(cls, text: str, error: "CategorizedError | None" = None, **metadata: Any) -> "ToolResult":
        """Create a failed text result."""
        return cls(content=[{"type": "text", "text": text}], is_error=True, error=error, metadata=metadata)
