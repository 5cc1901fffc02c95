"""Decorators for marking methods as MCP tools."""

from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Optional


@dataclass(frozen=True)
class ToolMetadata:
    """Registration data attached to a decorated tool method."""
    name: str
    description: Optional[str] = None


def get_tool_metadata(method: Any) -> Optional[ToolMetadata]:
    """Return the ToolMetadata of a decorated method, or None."""
    metadata = getattr(method, "_mcp_tool", None)
    return metadata if isinstance(metadata, ToolMetadata) else None


def mcp_tool(
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> Callable[[Callable], Callable]:
    """Decorator to mark an async method as an MCP tool.

    Args:
        name: Tool name exposed to callers. Defaults to the method name.
        description: Description override. Defaults to the first docstring line.

    Example:
        @mcp_tool(name="search_emails")
        async def search_emails(self, query: str, limit: int = 50) -> List[Dict[str, Any]]:
            '''Search emails by a rough query over from/subject/body.'''
            ...
    """
    def decorator(func: Callable) -> Callable:
        metadata = ToolMetadata(name=name or func.__name__, description=description)

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            return await func(*args, **kwargs)

        wrapper._mcp_tool = metadata  # type: ignore
        return wrapper

    return decorator
