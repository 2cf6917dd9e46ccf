"""
Dispatcher: turns one inbound JSON-RPC request into one response.

Only `tools/list` and `tools/call` are served. Tool lookup and
invocation failures come back as JSON-RPC error frames; an undecodable
request or an unsupported method is raised to the transport adapter.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from .errors import (
    InvocationError,
    MethodNotImplementedError,
    ProtocolError,
    ToolNotFoundError,
)
from .mcp.protocol import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    METHOD_TOOLS_CALL,
    METHOD_TOOLS_LIST,
    PARSE_ERROR,
    SERVER_ERROR,
    JsonRpcRequest,
    error_response,
    result_response,
)
from .mcp.session import ProcessSession
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Routes namespaced tool requests to provider processes.

    Usage:
        dispatcher = Dispatcher(registry)
        reply = await dispatcher.handle(b'{"jsonrpc":"2.0","id":1,"method":"tools/list"}')
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        session: ProcessSession | None = None,
        invoke_timeout: float | None = None,
    ):
        self.registry = registry
        self.session = session or registry.session
        self.invoke_timeout = invoke_timeout

    async def handle(self, raw: bytes | str, timeout: float | None = None) -> bytes:
        """
        Process one raw request and return the serialized response.

        Raises ProtocolError for an undecodable request and
        MethodNotImplementedError for anything but tools/list and tools/call.
        """
        request = JsonRpcRequest.from_json(raw)
        response = await self.handle_message(request, timeout=timeout)
        return json.dumps(response).encode("utf-8")

    async def handle_message(
        self, request: JsonRpcRequest, timeout: float | None = None
    ) -> dict[str, Any]:
        if request.method == METHOD_TOOLS_LIST:
            return result_response(request.id, {"tools": self.registry.tool_catalog()})

        if request.method == METHOD_TOOLS_CALL:
            return await self._call_tool(request, timeout)

        raise MethodNotImplementedError(request.method)

    async def _call_tool(self, request: JsonRpcRequest, timeout: float | None) -> dict[str, Any]:
        params = request.params or {}
        name = params.get("name")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}

        if not isinstance(name, str):
            return error_response(request.id, SERVER_ERROR, "Failed to execute tool: missing tool name")
        if not isinstance(arguments, dict):
            return error_response(
                request.id, SERVER_ERROR, "Failed to execute tool: 'arguments' must be an object"
            )

        try:
            endpoint, local_name = self.registry.resolve(name)
        except ToolNotFoundError as e:
            logger.info(f"tools/call for unknown tool {name}: {e}")
            return error_response(request.id, SERVER_ERROR, f"Failed to execute tool: {e}")

        try:
            result = await self.session.invoke(
                endpoint.executable_path,
                local_name,
                arguments,
                timeout=timeout if timeout is not None else self.invoke_timeout,
            )
        except InvocationError as e:
            logger.warning(f"Tool {name} failed: {e}")
            return error_response(request.id, SERVER_ERROR, f"Failed to execute tool: {e}")

        return result_response(request.id, result)


def error_frame_for(raw: bytes | str, exc: Exception) -> bytes:
    """
    Build the JSON-RPC error frame for an exception raised by Dispatcher.handle.

    Used by transports that must answer every request, such as stdio.
    """
    request_id = None
    parsed_ok = True
    try:
        parsed = json.loads(raw)
        if isinstance(parsed, dict):
            request_id = parsed.get("id")
    except (ValueError, RecursionError):
        parsed_ok = False

    if isinstance(exc, MethodNotImplementedError):
        code = METHOD_NOT_FOUND
    elif isinstance(exc, ProtocolError):
        code = INVALID_REQUEST if parsed_ok else PARSE_ERROR
    else:
        code = INTERNAL_ERROR
    return json.dumps(error_response(request_id, code, str(exc))).encode("utf-8")
