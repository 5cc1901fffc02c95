"""MCP Framework - A small framework for building line-oriented MCP tool servers.

Tools are async methods marked with @mcp_tool on a BaseMCPServer subclass.
Their input schemas are generated from type annotations and docstrings.
"""

from .base import BaseMCPServer
from .decorators import mcp_tool
from .jsonrpc import ToolError

__all__ = ["BaseMCPServer", "mcp_tool", "ToolError"]
