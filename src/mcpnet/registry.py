"""
Provider Registry.

Discovers provider executables in a directory, caches their tool
catalogs, and resolves namespaced tool names (`identifier.localName`)
to the endpoint that owns them.

The catalog lives in an immutable snapshot. Readers grab the current
snapshot under a shared lock; reload builds a new one privately and
swaps it in under an exclusive lock, so nobody ever sees a half-built
registry.
"""

from __future__ import annotations

import asyncio
import logging
import os
import stat
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from .errors import DiscoveryError, ToolNotFoundError
from .mcp.session import ProcessSession
from .models import ProviderEndpoint, ToolDescriptor, identifier_for, split_name

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 8

EXECUTABLE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


# ── Locking ──────────────────────────────────────────────────

class ReadWriteLock:
    """
    Many readers or one writer. Waiting writers block new readers.

    Usable from threads and from the event loop: critical sections
    guarded by it never await.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


# ── Reload results ───────────────────────────────────────────

@dataclass
class ReloadReport:
    """What a reload found."""
    directory: str
    endpoints: int = 0
    tools: int = 0
    failures: dict[str, str] = field(default_factory=dict)
    collisions: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures and not self.collisions


def is_candidate(entry: os.DirEntry) -> bool:
    """A regular file with at least one executable bit set."""
    try:
        if not entry.is_file(follow_symlinks=True):
            return False
        return bool(entry.stat(follow_symlinks=True).st_mode & EXECUTABLE_BITS)
    except OSError:
        return False


def scan_directory(directory: str | Path) -> list[Path]:
    """List candidate provider executables, non-recursively, in name order."""
    try:
        with os.scandir(directory) as entries:
            found = [Path(e.path) for e in entries if is_candidate(e)]
    except OSError as e:
        raise DiscoveryError(f"cannot read MCP directory {directory}: {e}") from e
    return sorted(found, key=lambda p: p.name)


# ── Provider Registry ────────────────────────────────────────

class ProviderRegistry:
    """
    Namespaced catalog of every tool offered by the providers in a directory.

    Usage:
        registry = ProviderRegistry("./mcps")
        await registry.reload()
        for name, tool in registry.list_all_tools():
            print(name, tool.description)
        endpoint, local_name = registry.resolve("calculator-mcp.add")
    """

    def __init__(
        self,
        directory: str | Path | None = None,
        session: ProcessSession | None = None,
        discovery_timeout: float | None = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        strict_identifiers: bool = False,
    ):
        self.directory = str(directory) if directory is not None else None
        self.session = session or ProcessSession()
        self.discovery_timeout = discovery_timeout
        self.max_concurrency = max(1, max_concurrency)
        self.strict_identifiers = strict_identifiers
        self._lock = ReadWriteLock()
        self._snapshot: Mapping[str, ProviderEndpoint] = MappingProxyType({})

    # ── Reload ───────────────────────────────────────────────

    async def reload(self, directory: str | Path | None = None) -> ReloadReport:
        """
        Rediscover every provider in the directory and swap in the result.

        A provider that fails discovery is kept with an empty catalog.
        Raises DiscoveryError only when the directory itself cannot be
        read, or on an identifier collision in strict mode; the previous
        snapshot stays in place in both cases.
        """
        if directory is not None:
            self.directory = str(directory)
        if self.directory is None:
            raise DiscoveryError("no MCP directory configured")

        report = ReloadReport(directory=self.directory)
        paths = scan_directory(self.directory)

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def discover(path: Path) -> ProviderEndpoint:
            async with semaphore:
                try:
                    tools = await self.session.discover(str(path), self.discovery_timeout)
                except DiscoveryError as e:
                    logger.warning(f"Failed to get tool info for {path}: {e}")
                    report.failures[identifier_for(path)] = str(e)
                    tools = ()
            return ProviderEndpoint.from_path(path, tools)

        discovered = await asyncio.gather(*(discover(p) for p in paths))

        endpoints: dict[str, ProviderEndpoint] = {}
        for endpoint in discovered:
            if not endpoint.identifier:
                logger.warning(f"Skipping {endpoint.executable_path}: empty identifier")
                continue
            previous = endpoints.get(endpoint.identifier)
            if previous is not None:
                message = (
                    f"Identifier '{endpoint.identifier}' used by both "
                    f"{previous.executable_path} and {endpoint.executable_path}"
                )
                if self.strict_identifiers:
                    raise DiscoveryError(message)
                logger.warning(f"{message}; keeping {endpoint.executable_path}")
                report.collisions.append(endpoint.identifier)
            endpoints[endpoint.identifier] = endpoint
            logger.info(
                f"Loaded MCP: {endpoint.identifier} from {endpoint.executable_path} "
                f"with {len(endpoint.tools)} tools"
            )

        self._swap(endpoints)
        report.endpoints = len(endpoints)
        report.tools = sum(len(e.tools) for e in endpoints.values())
        return report

    def load_endpoints(self, endpoints: list[ProviderEndpoint]) -> None:
        """Replace the snapshot with already-discovered endpoints."""
        self._swap({e.identifier: e for e in endpoints})

    def _swap(self, endpoints: dict[str, ProviderEndpoint]) -> None:
        snapshot = MappingProxyType(dict(endpoints))
        with self._lock.write():
            self._snapshot = snapshot

    # ── Reads ────────────────────────────────────────────────

    def snapshot(self) -> Mapping[str, ProviderEndpoint]:
        """The current read-only identifier -> endpoint mapping."""
        with self._lock.read():
            return self._snapshot

    def list_all_tools(self) -> list[tuple[str, ToolDescriptor]]:
        """Every tool of every provider, as (namespaced name, descriptor)."""
        snapshot = self.snapshot()
        tools: list[tuple[str, ToolDescriptor]] = []
        for endpoint in snapshot.values():
            tools.extend(endpoint.namespaced_tools())
        return tools

    def tool_catalog(self) -> list[dict[str, Any]]:
        """list_all_tools() as JSON-ready dicts carrying the namespaced name."""
        return [tool.with_name(name).to_dict() for name, tool in self.list_all_tools()]

    def resolve(self, namespaced_name: str) -> tuple[ProviderEndpoint, str]:
        """Map `identifier.localName` to its endpoint and local tool name."""
        identifier, local_name = split_name(namespaced_name)
        endpoint = self.snapshot().get(identifier)
        if endpoint is None:
            raise ToolNotFoundError(f"MCP not found: {identifier}")
        return endpoint, local_name

    def get(self, identifier: str) -> ProviderEndpoint | None:
        return self.snapshot().get(identifier)

    def identifiers(self) -> list[str]:
        return list(self.snapshot().keys())

    @property
    def count(self) -> int:
        return len(self.snapshot())

    @property
    def tool_count(self) -> int:
        return sum(len(e.tools) for e in self.snapshot().values())
