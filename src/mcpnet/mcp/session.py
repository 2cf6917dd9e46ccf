"""
Process sessions: one short-lived provider process per operation.

Every discovery and every invocation spawns a fresh provider, performs
the `initialize` handshake, sends exactly one follow-up request, reads
its response, and kills the process whatever the outcome.

Usage:
    session = ProcessSession()
    tools = await session.discover("/opt/mcps/calculator-mcp")
    result = await session.invoke("/opt/mcps/calculator-mcp", "add", {"x": 1, "y": 2})
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..errors import (
    DiscoveryError,
    InvocationTimeoutError,
    MCPNetError,
    ProtocolError,
)
from ..models import JsonValue, ToolDescriptor
from .protocol import (
    JsonRpcResponse,
    call_tool_request,
    initialize_request,
    list_tools_request,
)
from .transport import DEFAULT_MAX_MESSAGE_BYTES, StdioTransport

logger = logging.getLogger(__name__)

DEFAULT_DISCOVERY_TIMEOUT = 30.0


def decode_tools(result: Any) -> tuple[ToolDescriptor, ...]:
    """Decode the `result` of a tools/list response into descriptors."""
    if result is None:
        return ()
    if isinstance(result, list):
        entries = result
    elif isinstance(result, dict):
        entries = result.get("tools") or []
    else:
        raise ProtocolError(f"unexpected tools/list result: {result!r}")

    if not isinstance(entries, list):
        raise ProtocolError(f"'tools' must be an array, got {type(entries).__name__}")

    try:
        return tuple(ToolDescriptor.from_dict(entry) for entry in entries)
    except ValueError as e:
        raise ProtocolError(f"failed to parse tools/list response: {e}") from e


class ProcessSession:
    """
    Drives provider processes through the handshake and one request.

    Holds no per-call state, so one instance can serve any number of
    concurrent discoveries and invocations.
    """

    def __init__(
        self,
        env: dict[str, str] | None = None,
        discovery_timeout: float = DEFAULT_DISCOVERY_TIMEOUT,
        max_message_bytes: int = DEFAULT_MAX_MESSAGE_BYTES,
    ):
        self.env = env
        self.discovery_timeout = discovery_timeout
        self.max_message_bytes = max_message_bytes

    def _transport(self, executable_path: str) -> StdioTransport:
        return StdioTransport(
            [executable_path], env=self.env, max_message_bytes=self.max_message_bytes
        )

    async def _handshake(self, transport: StdioTransport) -> JsonRpcResponse:
        response = await transport.request(initialize_request(transport.next_id()))
        if response.is_error:
            logger.debug(f"initialize returned an error, continuing: {response.error}")
        return response

    # ── Discovery ────────────────────────────────────────────

    async def discover(
        self, executable_path: str, timeout: float | None = None
    ) -> tuple[ToolDescriptor, ...]:
        """
        Ask a provider for its tool catalog.

        Always bounded by a timeout. Every failure is raised as
        DiscoveryError; callers treat it as "zero tools".
        """
        timeout = timeout if timeout is not None else self.discovery_timeout
        try:
            return await asyncio.wait_for(self._discover(executable_path), timeout)
        except asyncio.TimeoutError as e:
            raise DiscoveryError(
                f"{executable_path}: no answer within {timeout:g}s"
            ) from e
        except DiscoveryError:
            raise
        except MCPNetError as e:
            raise DiscoveryError(f"{executable_path}: {e}") from e
        except Exception as e:
            logger.debug(f"Unexpected discovery failure for {executable_path}", exc_info=True)
            raise DiscoveryError(f"{executable_path}: {e.__class__.__name__}: {e}") from e

    async def _discover(self, executable_path: str) -> tuple[ToolDescriptor, ...]:
        async with self._transport(executable_path) as transport:
            await self._handshake(transport)
            response = await transport.request(list_tools_request(transport.next_id()))

        if response.is_error:
            raise DiscoveryError(
                f"{executable_path}: tools/list failed: {response.error}"
            )
        return decode_tools(response.result)

    # ── Invocation ───────────────────────────────────────────

    async def invoke(
        self,
        executable_path: str,
        local_name: str,
        arguments: dict[str, JsonValue] | None,
        timeout: float | None = None,
    ) -> JsonValue:
        """
        Call one tool on a fresh provider process.

        `timeout` bounds spawn, handshake and call together; None means
        the caller bounds it (cancelling the awaiting task kills the
        provider). Raises RemoteToolError when the provider answers with
        an error object, TransportError or ProtocolError otherwise.
        """
        call = self._invoke(executable_path, local_name, arguments)
        if timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError as e:
            raise InvocationTimeoutError(
                f"{local_name} on {executable_path} timed out after {timeout:g}s"
            ) from e

    async def _invoke(
        self, executable_path: str, local_name: str, arguments: dict[str, JsonValue] | None
    ) -> JsonValue:
        async with self._transport(executable_path) as transport:
            await self._handshake(transport)
            response = await transport.request(
                call_tool_request(transport.next_id(), local_name, arguments)
            )

        response.raise_for_error()
        return response.result
