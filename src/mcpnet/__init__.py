"""
mcpnet: a registry and dispatcher for stdio tool providers.

Usage:
    from mcpnet import Dispatcher, ProviderRegistry

    # Discover every provider executable in a directory
    registry = ProviderRegistry("./mcps")
    await registry.reload()

    # Namespaced catalog: "calculator-mcp.add", "hello-mcp.hello", ...
    tools = registry.list_all_tools()

    # Answer raw JSON-RPC requests (tools/list, tools/call)
    dispatcher = Dispatcher(registry)
    reply = await dispatcher.handle(raw_request)
"""

from .config import ProxyConfig, ServerConfig
from .dispatcher import Dispatcher
from .errors import (
    DiscoveryError,
    DispatchError,
    InvocationError,
    InvocationTimeoutError,
    MCPNetError,
    MethodNotImplementedError,
    ProtocolError,
    RemoteToolError,
    ToolNotFoundError,
    TransportError,
)
from .mcp.session import ProcessSession
from .models import ProviderEndpoint, ToolDescriptor, compose_name, split_name
from .registry import ProviderRegistry, ReloadReport

__version__ = "0.1.0"

__all__ = [
    # Core
    "Dispatcher",
    "ProcessSession",
    "ProviderRegistry",
    "ReloadReport",
    # Config
    "ProxyConfig",
    "ServerConfig",
    # Models
    "ProviderEndpoint",
    "ToolDescriptor",
    "compose_name",
    "split_name",
    # Errors
    "DiscoveryError",
    "DispatchError",
    "InvocationError",
    "InvocationTimeoutError",
    "MCPNetError",
    "MethodNotImplementedError",
    "ProtocolError",
    "RemoteToolError",
    "ToolNotFoundError",
    "TransportError",
]
