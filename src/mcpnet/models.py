"""
Data models for mcpnet.

Tool descriptors, provider endpoints, and the namespacing scheme
(`identifier.localName`) used to address tools from outside.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Union

from .errors import ToolNotFoundError

# Any JSON value: None, bool, int, float, str, list, dict.
JsonValue = Union[None, bool, int, float, str, list, dict]

NAMESPACE_SEPARATOR = "."


# ── Namespacing ──────────────────────────────────────────────

def compose_name(identifier: str, local_name: str) -> str:
    return f"{identifier}{NAMESPACE_SEPARATOR}{local_name}"


def split_name(namespaced_name: str) -> tuple[str, str]:
    """
    Split a namespaced tool name on its first separator.

    The local part may itself contain dots:
        split_name("calc.math.add") -> ("calc", "math.add")
    """
    identifier, sep, local_name = namespaced_name.partition(NAMESPACE_SEPARATOR)
    if not sep:
        raise ToolNotFoundError(
            f"invalid tool name format, expected 'mcp.tool': {namespaced_name}"
        )
    return identifier, local_name


def identifier_for(path: str | Path) -> str:
    """Provider identifier: the executable's file name without its extension."""
    name = Path(path).name
    stem, dot, _ = name.rpartition(".")
    return stem if dot else name


# ── Core data models ─────────────────────────────────────────

@dataclass(frozen=True)
class ToolDescriptor:
    """A tool as reported by a provider's tools/list response."""
    name: str
    description: str | None = None
    parameters: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolDescriptor:
        if not isinstance(data, dict) or not isinstance(data.get("name"), str):
            raise ValueError(f"Tool entry must be an object with a 'name': {data!r}")
        parameters = data.get("parameters")
        if parameters is None:
            # MCP proper calls it inputSchema
            parameters = data.get("inputSchema")
        return cls(
            name=data["name"],
            description=data.get("description"),
            parameters=parameters,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        if self.description:
            out["description"] = self.description
        if self.parameters:
            out["parameters"] = self.parameters
        return out

    def with_name(self, name: str) -> ToolDescriptor:
        return replace(self, name=name)


@dataclass(frozen=True)
class ProviderEndpoint:
    """A provider executable and the tool catalog captured at discovery."""
    identifier: str
    executable_path: str
    tools: tuple[ToolDescriptor, ...] = field(default_factory=tuple)

    @classmethod
    def from_path(
        cls, path: str | Path, tools: tuple[ToolDescriptor, ...] = ()
    ) -> ProviderEndpoint:
        return cls(
            identifier=identifier_for(path),
            executable_path=str(path),
            tools=tuple(tools),
        )

    def namespaced_tools(self) -> list[tuple[str, ToolDescriptor]]:
        return [(compose_name(self.identifier, t.name), t) for t in self.tools]

    def find_tool(self, local_name: str) -> ToolDescriptor | None:
        return next((t for t in self.tools if t.name == local_name), None)
