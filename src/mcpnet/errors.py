"""
Exception hierarchy for mcpnet.

Discovery problems are non-fatal to a registry reload. Everything else
is fatal to the triggering request only and is turned into a JSON-RPC
error frame by the dispatcher or the transport adapters.
"""

from __future__ import annotations


class MCPNetError(Exception):
    """Base class for all mcpnet errors."""


class DiscoveryError(MCPNetError):
    """A provider failed its handshake or tool listing."""


class ToolNotFoundError(MCPNetError):
    """A namespaced tool name is malformed or names an unknown provider."""


class DispatchError(MCPNetError):
    """An inbound request could not be dispatched at all."""


class InvocationError(MCPNetError):
    """A single tools/call failed."""


class TransportError(InvocationError):
    """Process spawn or pipe I/O failed."""


class InvocationTimeoutError(TransportError):
    """The provider did not answer within the allotted time."""


class ProtocolError(DispatchError, InvocationError):
    """Malformed JSON, a broken frame, or an invalid JSON-RPC envelope."""


class MethodNotImplementedError(DispatchError):
    def __init__(self, method: str):
        self.method = method
        super().__init__(f"method not implemented: {method}")


class RemoteToolError(InvocationError):
    """The provider answered with a JSON-RPC error object."""

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"MCP tool error: {message} (code {code})")
