"""
Shared fixtures: fake provider executables and a scripted ProcessSession.

Fake providers are small Python scripts with a `sys.executable` shebang,
so tests exercise real subprocesses and real pipes.
"""

from __future__ import annotations

import asyncio
import os
import stat
import sys
import time
from pathlib import Path
from typing import Any

import pytest

from mcpnet.errors import DiscoveryError
from mcpnet.models import ToolDescriptor, identifier_for


PROVIDER_TEMPLATE = '''#!{python}
import json, os, sys, time

MODE = {mode!r}
TOOLS = {tools!r}
PIDFILE = {pidfile!r}


def send(obj):
    data = json.dumps(obj) + "\\n"
    if MODE == "split":
        half = len(data) // 2
        sys.stdout.write(data[:half])
        sys.stdout.flush()
        time.sleep(0.05)
        sys.stdout.write(data[half:])
    else:
        sys.stdout.write(data)
    sys.stdout.flush()


if MODE == "crash":
    sys.stderr.write("provider exploded\\n")
    sys.exit(3)

for line in sys.stdin:
    if not line.strip():
        continue
    req = json.loads(line)
    rid = req.get("id")
    method = req.get("method")
    params = req.get("params") or {{}}

    if method == "initialize":
        if MODE == "hang":
            time.sleep(60)
        if MODE == "garbage":
            sys.stdout.write("this is not json\\n")
            sys.stdout.flush()
            continue
        send({{"jsonrpc": "2.0", "id": rid, "result": {{"protocolVersion": "2024-11-05"}}}})

    elif method == "tools/list":
        if MODE == "deep":
            sys.stdout.write("[" * 200000 + "\\n")
            sys.stdout.flush()
        elif MODE == "list-error":
            send({{"jsonrpc": "2.0", "id": rid, "error": {{"code": -32601, "message": "nope"}}}})
        else:
            send({{"jsonrpc": "2.0", "id": rid, "result": {{"tools": TOOLS}}}})

    elif method == "tools/call":
        if PIDFILE:
            with open(PIDFILE, "w") as f:
                f.write(str(os.getpid()))
        if MODE == "slow":
            time.sleep(60)
        if MODE == "error":
            send({{"jsonrpc": "2.0", "id": rid,
                   "error": {{"code": -1, "message": "cannot divide by zero"}}}})
            continue
        if MODE == "big":
            send({{"jsonrpc": "2.0", "id": rid, "result": {{"blob": "x" * 200000}}}})
            continue
        if MODE == "chatty":
            send({{"jsonrpc": "2.0", "method": "notifications/progress", "params": {{}}}})
            send({{"jsonrpc": "2.0", "id": 999, "result": "stray"}})
        send({{"jsonrpc": "2.0", "id": rid,
               "result": {{"echo": params.get("name"), "arguments": params.get("arguments")}}}})
'''

DEFAULT_TOOLS = [
    {"name": "echo", "description": "Echo the arguments back"},
    {"name": "ping", "parameters": {"type": "object", "properties": {}}},
]


def write_provider(
    directory: Path,
    name: str,
    mode: str = "normal",
    tools: list[dict] | None = None,
    pidfile: Path | None = None,
) -> Path:
    """Write an executable fake provider script and return its path."""
    path = directory / name
    path.write_text(PROVIDER_TEMPLATE.format(
        python=sys.executable,
        mode=mode,
        tools=DEFAULT_TOOLS if tools is None else tools,
        pidfile=str(pidfile) if pidfile else "",
    ))
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    # A reaped child no longer exists; a zombie would still answer
    return True


async def wait_for_file(path: Path, timeout: float = 10.0) -> str:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if path.exists() and path.read_text():
            return path.read_text()
        await asyncio.sleep(0.02)
    raise AssertionError(f"{path} never written")


def touch_executable(directory: Path, name: str) -> Path:
    path = directory / name
    path.write_text("#!/bin/sh\nexit 0\n")
    path.chmod(0o755)
    return path


@pytest.fixture
def provider_dir(tmp_path):
    directory = tmp_path / "mcps"
    directory.mkdir()
    return directory


@pytest.fixture
def make_provider(provider_dir):
    """Factory fixture: make_provider("calc", mode="error", tools=[...])."""
    def _make(name: str, **kwargs: Any) -> Path:
        return write_provider(provider_dir, name, **kwargs)
    return _make


class ScriptedSession:
    """
    Stand-in for ProcessSession that never spawns anything.

    `catalogs` maps identifier -> tool names; identifiers in `failing`
    raise DiscoveryError. When `gate` is set, discovery waits for it.
    """

    def __init__(
        self,
        catalogs: dict[str, list[str]] | None = None,
        failing: tuple[str, ...] = (),
        gate: asyncio.Event | None = None,
        results: dict[str, Any] | None = None,
    ):
        self.catalogs = catalogs or {}
        self.failing = failing
        self.gate = gate
        self.results = results or {}
        self.discovered: list[str] = []
        self.invocations: list[tuple[str, str, dict, float | None]] = []

    async def discover(self, executable_path: str, timeout: float | None = None):
        if self.gate is not None:
            await self.gate.wait()
        identifier = identifier_for(executable_path)
        self.discovered.append(identifier)
        if identifier in self.failing:
            raise DiscoveryError(f"{executable_path}: handshake failed")
        return tuple(ToolDescriptor(name=n) for n in self.catalogs.get(identifier, []))

    async def invoke(self, executable_path, local_name, arguments, timeout=None):
        self.invocations.append((executable_path, local_name, arguments, timeout))
        result = self.results.get(local_name, {"ok": True})
        if isinstance(result, Exception):
            raise result
        return result
