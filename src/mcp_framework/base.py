"""Base class for annotation-based MCP servers."""

import argparse
import asyncio
import inspect
import json
import logging
import sys
from types import MappingProxyType
from typing import IO, Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from mcp import types

from . import jsonrpc
from .decorators import get_tool_metadata
from .schema_generator import bind_arguments, extract_parameter_schema

PROTOCOL_VERSION = "2024-11-05"


class BaseMCPServer:
    """Base class for creating MCP servers using annotated methods.

    Inherit from this class and use the @mcp_tool decorator to mark methods
    that should be exposed as MCP tools. Requests arrive one JSON object per
    line and each is answered with exactly one JSON line, except
    notifications, which are never answered: `initialized` and any
    `notifications/` method sent without an id. Lines are handled strictly in
    order: a tool call finishes before the next line is read.

    Example:
        class EmailServer(BaseMCPServer):
            def __init__(self):
                super().__init__("email-server", "1.0.0")

            @mcp_tool(name="send_email")
            async def send_email(self, to: str, subject: str, body: str) -> str:
                '''Send an email.

                Args:
                    to: Recipient email address
                    subject: Email subject
                    body: Email body contents
                '''
                return "sent"
    """

    def __init__(self, server_name: str = "mcp-server", server_version: str = "0.1.0", tool_prefix: str = ""):
        """Initialize the MCP server.

        Args:
            server_name: Name reported in the initialize response
            server_version: Version reported in the initialize response
            tool_prefix: Prefix to add to all tool names
        """
        self.server_name = server_name
        self.server_version = server_version
        self.tool_prefix = tool_prefix

        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
        )

        # The catalogue is fixed for the life of the process
        self._tools: Mapping[str, Callable[..., Any]] = MappingProxyType(self._discover_tools())
        self._catalogue: Tuple[types.Tool, ...] = tuple(self._build_catalogue())

    def _discover_tools(self) -> Dict[str, Callable[..., Any]]:
        """Discover methods decorated with @mcp_tool."""
        tools: Dict[str, Callable[..., Any]] = {}
        for _, method in inspect.getmembers(self, predicate=inspect.ismethod):
            metadata = get_tool_metadata(method)
            if metadata is None:
                continue
            tool_name = f"{self.tool_prefix}{metadata.name}"
            tools[tool_name] = method
            logging.info(f"Discovered MCP tool: {tool_name}")
        return tools

    def _build_catalogue(self) -> List[types.Tool]:
        catalogue = []
        for tool_name, method in sorted(self._tools.items()):
            metadata = get_tool_metadata(method)
            description = metadata.description if metadata else None
            if not description and method.__doc__:
                description = method.__doc__.strip().split("\n")[0]
            catalogue.append(
                types.Tool(
                    name=tool_name,
                    description=description or f"Tool: {tool_name}",
                    inputSchema=extract_parameter_schema(method),
                )
            )
        return catalogue

    def list_tools(self) -> Tuple[types.Tool, ...]:
        """Return the immutable tool catalogue built at start-up."""
        return self._catalogue

    def initialize_result(self) -> types.InitializeResult:
        return types.InitializeResult(
            protocolVersion=PROTOCOL_VERSION,
            capabilities=types.ServerCapabilities(tools=types.ToolsCapability()),
            serverInfo=types.Implementation(name=self.server_name, version=self.server_version),
        )

    async def handle_line(self, line: Union[str, bytes]) -> Optional[Dict[str, Any]]:
        """Handle one input line.

        Raw bytes are decoded as UTF-8; a line that does not decode is a parse
        error like any other unparsable line. Only an empty line is skipped.

        Returns:
            The response object to write, or None when nothing must be written
        """
        if isinstance(line, bytes):
            try:
                line = line.decode("utf-8")
            except UnicodeDecodeError as e:
                logging.warning(f"Undecodable request line: {e}")
                return jsonrpc.error_response(jsonrpc.NO_ID, jsonrpc.PARSE_ERROR, "parse error")

        line = line.rstrip("\r\n")
        if not line:
            return None

        try:
            request = jsonrpc.parse_request(line)
        except jsonrpc.ParseError as e:
            logging.warning(f"Unparsable request line: {e}")
            return jsonrpc.error_response(jsonrpc.NO_ID, jsonrpc.PARSE_ERROR, "parse error")

        return await self.handle_request(request)

    async def handle_request(self, request: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Route a decoded request to its method handler."""
        method = request.get("method", "")
        request_id = request.get("id", jsonrpc.NO_ID)

        # A notifications/ method sent with an id is a request and gets an answer
        is_notification = method.startswith("notifications/") and request_id is jsonrpc.NO_ID
        if method == "initialized" or is_notification:
            logging.debug(f"Notification received: {method}")
            return None

        if method == "initialize":
            result = self.initialize_result().model_dump(mode="json", by_alias=True, exclude_none=True)
            return jsonrpc.success_response(request_id, result)

        if method == "ping":
            return jsonrpc.success_response(request_id, {})

        if method == "tools/list":
            tools = [tool.model_dump(mode="json", by_alias=True, exclude_none=True) for tool in self._catalogue]
            return jsonrpc.success_response(request_id, {"tools": tools})

        if method == "tools/call":
            try:
                result = await self.call_tool(request.get("params"))
            except jsonrpc.ToolError as e:
                return jsonrpc.error_response(request_id, e.code, e.message)
            return jsonrpc.success_response(
                request_id, result.model_dump(mode="json", by_alias=True, exclude_none=True)
            )

        logging.warning(f"Method not found: {method}")
        return jsonrpc.error_response(request_id, jsonrpc.METHOD_NOT_FOUND, "method not found")

    async def call_tool(self, params: Any) -> types.CallToolResult:
        """Validate a tools/call envelope, run the tool and wrap its result.

        Raises:
            ToolError: For malformed params, unknown tools, bad arguments and
                any exception raised by the tool itself
        """
        if not isinstance(params, dict):
            raise jsonrpc.ToolError("invalid tool call params")
        name = params.get("name")
        arguments = params.get("arguments")
        if not isinstance(name, str) or not (arguments is None or isinstance(arguments, dict)):
            raise jsonrpc.ToolError("invalid tool call params")

        method = self._tools.get(name)
        if method is None:
            raise jsonrpc.ToolError(f"unknown tool: {name}")

        kwargs = bind_arguments(method, arguments or {})
        logging.info(f"Calling tool: {name}")
        try:
            result = await method(**kwargs)
        except jsonrpc.ToolError:
            raise
        except Exception as e:
            logging.error(f"Error executing tool {name}: {e}", exc_info=True)
            raise jsonrpc.ToolError(str(e) or e.__class__.__name__) from e

        return types.CallToolResult(content=[types.TextContent(type="text", text=self.serialize_result(result))])

    def serialize_result(self, result: Any) -> str:
        """Render a tool result as the text of a single content block."""
        if isinstance(result, str):
            return result
        return json.dumps(result)

    async def run(self, input_stream: Optional[IO[str]] = None, output_stream: Optional[IO[str]] = None) -> None:
        """Serve requests until the input stream reaches end of file.

        Lines are read from the binary buffer underneath a text stream when
        there is one, so undecodable input reaches handle_line as bytes.
        """
        input_stream = input_stream or sys.stdin
        output_stream = output_stream or sys.stdout
        logging.info(f"Starting {self.server_name} v{self.server_version}")

        reader = getattr(input_stream, "buffer", input_stream)
        loop = asyncio.get_event_loop()
        while True:
            line = await loop.run_in_executor(None, reader.readline)
            if not line:
                break

            response = await self.handle_line(line)
            if response is None:
                continue
            output_stream.write(json.dumps(response) + "\n")
            output_stream.flush()

        logging.info("Input closed, shutting down")

    def describe_tools(self) -> None:
        """Print human-readable descriptions of all available tools."""
        print(f"\n{self.server_name} v{self.server_version}")
        print("=" * 60)
        print("\nAvailable Tools:\n")

        for tool in self._catalogue:
            print(f"Tool: {tool.name}")
            print(f"  Description: {tool.description or 'No description available'}")

            properties = tool.inputSchema.get("properties", {})
            if not properties:
                print("  Parameters: None")
                print()
                continue

            print("  Parameters:")
            required_params = tool.inputSchema.get("required", [])
            for param_name, param_info in properties.items():
                param_type = param_info.get("type", "any")
                if param_type == "array" and "items" in param_info:
                    param_type = f"array[{param_info['items'].get('type', 'any')}]"
                if param_name in required_params:
                    qualifier = "(required)"
                else:
                    qualifier = f"(optional, default {json.dumps(param_info.get('default'))})"
                print(f"    - {param_name}: {param_type} {qualifier}")
                print(f"      {param_info.get('description', 'No description')}")
            print()

    def parse_args(self, args: Optional[List[str]] = None) -> argparse.Namespace:
        """Parse command line arguments.

        Args:
            args: Optional list of arguments to parse. If None, uses sys.argv.

        Returns:
            Parsed arguments namespace
        """
        parser = argparse.ArgumentParser(
            prog=self.server_name,
            description=f"{self.server_name} - MCP server over stdin/stdout",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        parser.add_argument(
            "--describe",
            action="store_true",
            help="Show available tools and their parameters",
        )

        # Allow subclasses to add their own arguments
        self.add_arguments(parser)

        return parser.parse_args(args)

    def add_arguments(self, parser: argparse.ArgumentParser) -> None:
        """Override in subclasses to add custom command line arguments.

        Args:
            parser: The argument parser to add arguments to
        """
        pass

    def main(self, args: Optional[List[str]] = None) -> None:
        """Main entry point for the server.

        Args:
            args: Optional list of command line arguments. If None, uses sys.argv.
        """
        parsed_args = self.parse_args(args)

        if parsed_args.describe:
            self.describe_tools()
            sys.exit(0)

        asyncio.run(self.run())
