"""
MCP provider protocol infrastructure.

Provides:
- JSON-RPC codec (JsonRpcRequest / JsonRpcResponse and builders)
- StdioTransport / MessageReader: client side (asyncio subprocess + newline framing)
- ProcessSession: one fresh provider process per discovery or invocation
- StdioToolServer / ToolHandler: framework for building providers
"""

from .protocol import JsonRpcRequest, JsonRpcResponse
from .provider import StdioToolServer, ToolError, ToolHandler, text_result
from .session import ProcessSession
from .transport import MessageReader, StdioTransport

__all__ = [
    "JsonRpcRequest",
    "JsonRpcResponse",
    "MessageReader",
    "ProcessSession",
    "StdioToolServer",
    "StdioTransport",
    "ToolError",
    "ToolHandler",
    "text_result",
]
