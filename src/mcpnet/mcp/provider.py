"""
Base classes for writing tool providers.

A provider is a standalone process that:
1. Reads JSON-RPC requests from stdin, one per line
2. Answers `initialize`, `tools/list` and `tools/call`
3. Writes JSON-RPC responses to stdout, one per line

To create a provider:

    from mcpnet.mcp.provider import StdioToolServer, ToolHandler, text_result

    class Shout(ToolHandler):
        name = "shout"
        description = "Upper-case some text"
        parameters = {
            "text": {"type": "string", "description": "The input"},
        }
        required = ["text"]

        def handle(self, params: dict) -> dict:
            return text_result(params["text"].upper())

    if __name__ == "__main__":
        server = StdioToolServer("shout-mcp")
        server.register(Shout())
        server.run()

Drop an executable that runs it into the registry's directory and the
tool shows up as `<file name>.shout`.
"""

from __future__ import annotations

import json
import logging
import sys
from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Any, Mapping, TextIO

from .protocol import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    METHOD_INITIALIZE,
    METHOD_NOT_FOUND,
    METHOD_TOOLS_CALL,
    METHOD_TOOLS_LIST,
    PARSE_ERROR,
    PROTOCOL_VERSION,
    SERVER_ERROR,
    error_response,
    result_response,
)

logger = logging.getLogger(__name__)


def text_result(text: str) -> dict:
    """MCP-style tool result carrying a single text block."""
    return {"content": [{"type": "text", "text": text}]}


class ToolError(Exception):
    """Raised by a handler to answer with a JSON-RPC error object."""

    def __init__(self, message: str, code: int = SERVER_ERROR):
        super().__init__(message)
        self.code = code
        self.message = message


class ToolHandler(ABC):
    """
    One tool offered by a provider.

    Set the class attributes and implement handle(); StdioToolServer
    takes care of framing and error replies.
    """

    name: str = ""
    description: str = ""
    # Read-only defaults; subclasses assign their own
    parameters: Mapping[str, dict] = MappingProxyType({})
    required: tuple[str, ...] = ()

    @abstractmethod
    def handle(self, params: dict[str, Any]) -> Any:
        """
        Run the tool on the call's `arguments` and return the result.

        The return value becomes the response `result`; raise ToolError
        to answer with an error object instead.
        """
        ...

    def get_schema(self) -> dict:
        """tools/list entry: name, description and a JSON-schema object."""
        schema: dict[str, Any] = {"type": "object", "properties": dict(self.parameters)}
        if self.required:
            schema["required"] = list(self.required)
        return {
            "name": self.name,
            "description": self.description,
            "parameters": schema,
        }


class _MethodNotFound(Exception):
    pass


class StdioToolServer:
    """
    Provider side of the protocol, one JSON-RPC message per line.

    Answers initialize, tools/list, tools/call and ping. Requests
    without an id are treated as notifications and get no reply.
    """

    def __init__(self, name: str = "mcpnet-provider", version: str = "1.0.0"):
        self.name = name
        self.version = version
        self._handlers: dict[str, ToolHandler] = {}

    def register(self, handler: ToolHandler) -> None:
        """Add a handler; a later one with the same name replaces it."""
        if not handler.name:
            raise ValueError(f"ToolHandler {handler.__class__.__name__} has no name")
        self._handlers[handler.name] = handler
        logger.info(f"Registered tool: {handler.name}")

    def run(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        """Serve requests until stdin reaches EOF."""
        stdin = stdin or sys.stdin
        stdout = stdout or sys.stdout
        logger.info(f"Tool server starting with {len(self._handlers)} tools: "
                    f"{list(self._handlers.keys())}")

        for line in stdin:
            response = self.handle_line(line)
            if response is not None:
                stdout.write(json.dumps(response) + "\n")
                stdout.flush()

    def handle_line(self, line: str) -> dict | None:
        """Answer one request line. Returns None for blank lines and notifications."""
        line = line.strip()
        if not line:
            return None

        try:
            request = json.loads(line)
        except (ValueError, RecursionError) as e:
            return error_response(None, PARSE_ERROR, f"Parse error: {e}")
        if not isinstance(request, dict):
            return error_response(None, PARSE_ERROR, "Parse error: expected an object")

        if "id" not in request:
            # Notification, e.g. notifications/initialized
            return None

        request_id = request.get("id")
        method = request.get("method", "")
        params = request.get("params") or {}

        try:
            if not isinstance(params, dict):
                raise ToolError("'params' must be an object", code=INVALID_PARAMS)
            return result_response(request_id, self._dispatch(method, params))
        except ToolError as e:
            return error_response(request_id, e.code, e.message)
        except _MethodNotFound as e:
            return error_response(request_id, METHOD_NOT_FOUND, str(e))
        except Exception as e:
            return error_response(request_id, INTERNAL_ERROR, str(e))

    def _dispatch(self, method: str, params: dict) -> Any:
        if method == METHOD_INITIALIZE:
            return {
                "protocolVersion": params.get("protocol_version", PROTOCOL_VERSION),
                "serverInfo": {"name": self.name, "version": self.version},
                "capabilities": {"tools": {}},
            }

        if method == "ping":
            return {"status": "ok", "tools": list(self._handlers.keys())}

        if method == METHOD_TOOLS_LIST:
            return {"tools": [h.get_schema() for h in self._handlers.values()]}

        if method == METHOD_TOOLS_CALL:
            tool_name = params.get("name", "")
            tool_params = params.get("arguments") or {}
            if not isinstance(tool_params, dict):
                raise ToolError("'arguments' must be an object", code=INVALID_PARAMS)

            handler = self._handlers.get(tool_name)
            if not handler:
                raise ToolError(
                    f"Unknown tool: '{tool_name}'. "
                    f"Available: {list(self._handlers.keys())}"
                )

            return handler.handle(tool_params)

        raise _MethodNotFound(f"Unknown method: '{method}'")
