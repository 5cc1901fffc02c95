"""JSON-RPC 2.0 envelope helpers for the line-oriented dispatcher."""

import json
from typing import Any, Dict, Optional

from mcp import types

JSONRPC_VERSION = "2.0"

PARSE_ERROR = types.PARSE_ERROR
METHOD_NOT_FOUND = types.METHOD_NOT_FOUND
# Application-defined failures: bad tool calls and domain errors
APPLICATION_ERROR = -32000

# Marks a request that carried no "id" member at all
NO_ID = object()


class ToolError(Exception):
    """A failure reported to the caller as an application error response."""

    def __init__(self, message: str, code: int = APPLICATION_ERROR) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class ParseError(Exception):
    """Raised when an input line is not a usable JSON-RPC request."""

    pass


def parse_request(line: str) -> Dict[str, Any]:
    """Decode one input line into a request object.

    Raises:
        ParseError: If the line is not JSON, not an object, or has a
            non-string method
    """
    try:
        request = json.loads(line)
    except ValueError as e:
        raise ParseError(str(e)) from e

    if not isinstance(request, dict):
        raise ParseError("request is not an object")
    if not isinstance(request.get("method", ""), str):
        raise ParseError("method is not a string")
    return request


def _envelope(request_id: Any) -> Dict[str, Any]:
    response: Dict[str, Any] = {"jsonrpc": JSONRPC_VERSION}
    if request_id is not NO_ID:
        response["id"] = request_id
    return response


def success_response(request_id: Any, result: Any) -> Dict[str, Any]:
    response = _envelope(request_id)
    response["result"] = result
    return response


def error_response(request_id: Any, code: int, message: str, data: Optional[Any] = None) -> Dict[str, Any]:
    error = types.ErrorData(code=code, message=message, data=data)
    response = _envelope(request_id)
    response["error"] = error.model_dump(mode="json", exclude_none=True)
    return response
