"""
Bridge between the provider registry and LangChain.

Converts every namespaced tool in a ProviderRegistry into a LangChain
StructuredTool, so an agent can call providers directly.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from langchain_core.tools import StructuredTool

from .errors import MCPNetError
from .mcp.session import ProcessSession
from .models import ToolDescriptor
from .registry import ProviderRegistry

EMPTY_SCHEMA = {"type": "object", "properties": {}}


def registry_tool_to_langchain(
    registry: ProviderRegistry,
    namespaced_name: str,
    session: ProcessSession | None = None,
    timeout: float | None = None,
    description_override: str | None = None,
) -> StructuredTool:
    """
    Create a LangChain StructuredTool that wraps one provider tool.

    When invoked by an agent, spawns the owning provider, runs the call,
    and returns the result as text. Failures come back as an error string.
    """
    endpoint, local_name = registry.resolve(namespaced_name)
    descriptor = endpoint.find_tool(local_name)
    session = session or registry.session

    description = (
        description_override
        or (descriptor.description if descriptor and descriptor.description else None)
        or f"MCP tool: {namespaced_name}"
    )

    async def _acall(**kwargs: Any) -> str:
        try:
            current, name = registry.resolve(namespaced_name)
            result = await session.invoke(current.executable_path, name, kwargs, timeout=timeout)
        except MCPNetError as e:
            return f"Error calling {namespaced_name}: {e}"
        return _result_text(result)

    def _call(**kwargs: Any) -> str:
        return asyncio.run(_acall(**kwargs))

    return StructuredTool.from_function(
        func=_call,
        coroutine=_acall,
        name=namespaced_name,
        description=description,
        # A JSON-schema dict makes LangChain pass arguments through untouched
        args_schema=(descriptor.parameters if descriptor and descriptor.parameters else EMPTY_SCHEMA),
    )


def registry_to_langchain_tools(
    registry: ProviderRegistry,
    session: ProcessSession | None = None,
    timeout: float | None = None,
) -> list[StructuredTool]:
    """Wrap every tool currently in the registry."""
    return [
        registry_tool_to_langchain(registry, name, session=session, timeout=timeout)
        for name, _ in registry.list_all_tools()
    ]


def _result_text(result: Any) -> str:
    """Flatten an MCP-style content result to text; JSON-encode anything else."""
    if isinstance(result, str):
        return result
    if isinstance(result, dict) and isinstance(result.get("content"), list):
        texts = [
            block.get("text", "")
            for block in result["content"]
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        if texts:
            return "\n".join(texts)
    return json.dumps(result, indent=2)


def auto_prompt_instructions(name: str, descriptor: ToolDescriptor) -> str:
    """Generate prompt instructions from a tool schema."""
    params = (descriptor.parameters or {}).get("properties", {})

    lines = [f"## Tool: {name}", descriptor.description or "", ""]
    if params:
        lines.append("Parameters:")
        for pname, pinfo in params.items():
            ptype = pinfo.get("type", "any")
            pdesc = pinfo.get("description", "")
            lines.append(f"  - {pname} ({ptype}): {pdesc}")

    return "\n".join(lines)
