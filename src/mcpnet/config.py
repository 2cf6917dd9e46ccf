"""
Configuration for the mcpnet server and proxy.

Settings can come from a YAML file, from a dict, or from the command
line; command-line values override the file.

Example config (mcpnet.yaml):
    mcp_dir: ./mcps
    http_addr: ":8080"
    name: Tools Gateway
    version: 1.2.0
    invoke_timeout: 60
    strict_identifiers: true
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from .mcp.session import DEFAULT_DISCOVERY_TIMEOUT
from .registry import DEFAULT_MAX_CONCURRENCY


def _load_yaml_mapping(path: str | Path, what: str) -> dict:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"{what} not found: {path}")

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{what} must be a YAML mapping, got {type(data).__name__}")
    return data


def _check_keys(cls: type, data: dict) -> None:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {unknown}")


# ── Server config ───────────────────────────────────────────

@dataclass
class ServerConfig:
    """
    Settings for the registry server.

    Fields:
        mcp_dir: Directory scanned for provider executables
        http_addr: "[host]:port" to listen on in HTTP mode
        stdio: Serve newline-delimited JSON-RPC on stdin/stdout instead of HTTP
        name / version: Reported by the HTTP app
        discovery_timeout: Seconds allowed for each provider's handshake + tools/list
        invoke_timeout: Seconds allowed for one tools/call (None = unbounded)
        max_concurrency: Providers discovered in parallel during a reload
        strict_identifiers: Fail a reload when two executables share an identifier
        log_level: Root logging level
    """
    mcp_dir: str = "./mcps"
    http_addr: str = ":8080"
    stdio: bool = False
    name: str = "MCP Server"
    version: str = "1.0.0"
    discovery_timeout: float = DEFAULT_DISCOVERY_TIMEOUT
    invoke_timeout: float | None = None
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    strict_identifiers: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServerConfig:
        _check_keys(cls, data)
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> ServerConfig:
        """Load server settings from a YAML file."""
        return cls.from_dict(_load_yaml_mapping(path, "Server config"))

    def merged(self, **overrides: Any) -> ServerConfig:
        """Copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def validate(self) -> None:
        """Raise ValueError for settings the server cannot start with."""
        if not self.stdio and not 0 <= self.port <= 65535:
            raise ValueError(f"Port out of range in '{self.http_addr}'")
        if self.discovery_timeout <= 0:
            raise ValueError("discovery_timeout must be positive")
        if self.invoke_timeout is not None and self.invoke_timeout <= 0:
            raise ValueError("invoke_timeout must be positive")
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

    @property
    def host(self) -> str:
        host, _, _ = self.http_addr.rpartition(":")
        return host or "0.0.0.0"

    @property
    def port(self) -> int:
        _, _, port = self.http_addr.rpartition(":")
        try:
            return int(port)
        except ValueError:
            raise ValueError(f"Invalid HTTP address '{self.http_addr}', expected [host]:port") from None


# ── Proxy config ────────────────────────────────────────────

@dataclass
class ProxyConfig:
    """Settings for the stdio-to-HTTP proxy."""
    endpoint: str = "http://localhost:8080"
    content_type: str = "application/json"
    timeout: float = 30.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProxyConfig:
        _check_keys(cls, data)
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> ProxyConfig:
        return cls.from_dict(_load_yaml_mapping(path, "Proxy config"))

    def merged(self, **overrides: Any) -> ProxyConfig:
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})
