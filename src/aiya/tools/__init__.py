"""Tools for the aiya agent.

Tool System:
    - ToolDefinition: Metadata advertised to the agent
    - ToolResult: Content blocks plus an ``isError`` flag

Tools:
    - shell: Secure shell command execution (``ExecuteCommand``)
"""

from aiya.tools.base import ToolDefinition, ToolResult

__all__ = ["ToolDefinition", "ToolResult"]
