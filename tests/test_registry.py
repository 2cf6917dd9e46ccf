"""
Tests for ProviderRegistry: discovery, aggregation, resolution, and
snapshot consistency while a reload is in flight.

Most tests use ScriptedSession (conftest.py) so no provider process is
spawned; TestRealProviders runs real fake-provider scripts.
"""

import asyncio
import threading

import pytest

from conftest import ScriptedSession, touch_executable
from mcpnet.errors import DiscoveryError, ToolNotFoundError
from mcpnet.registry import ProviderRegistry, ReadWriteLock, scan_directory


# ── Directory scanning ───────────────────────────────────────

class TestScanDirectory:
    def test_only_executable_regular_files(self, provider_dir):
        touch_executable(provider_dir, "b-mcp")
        touch_executable(provider_dir, "a-mcp")
        (provider_dir / "README.md").write_text("not a provider")
        (provider_dir / "subdir").mkdir()
        touch_executable(provider_dir / "subdir", "nested-mcp")

        assert [p.name for p in scan_directory(provider_dir)] == ["a-mcp", "b-mcp"]

    def test_any_execute_bit_counts(self, provider_dir):
        path = provider_dir / "group-only"
        path.write_text("#!/bin/sh\n")
        path.chmod(0o610)
        assert [p.name for p in scan_directory(provider_dir)] == ["group-only"]

    def test_missing_directory(self, tmp_path):
        with pytest.raises(DiscoveryError, match="cannot read MCP directory"):
            scan_directory(tmp_path / "missing")


# ── Reload & reads ───────────────────────────────────────────

class TestReload:
    @pytest.mark.asyncio
    async def test_aggregates_all_tools(self, provider_dir):
        touch_executable(provider_dir, "hello-mcp")
        touch_executable(provider_dir, "calculator-mcp")
        session = ScriptedSession({
            "hello-mcp": ["hello"],
            "calculator-mcp": ["add", "multiply", "divide"],
        })
        registry = ProviderRegistry(provider_dir, session=session)

        report = await registry.reload()

        names = sorted(name for name, _ in registry.list_all_tools())
        assert names == [
            "calculator-mcp.add",
            "calculator-mcp.divide",
            "calculator-mcp.multiply",
            "hello-mcp.hello",
        ]
        assert report.endpoints == 2
        assert report.tools == 4
        assert registry.tool_count == 4
        assert report.ok

    @pytest.mark.asyncio
    async def test_discovery_failure_is_isolated(self, provider_dir):
        touch_executable(provider_dir, "good")
        touch_executable(provider_dir, "broken")
        session = ScriptedSession({"good": ["a", "b"], "broken": ["never"]}, failing=("broken",))
        registry = ProviderRegistry(provider_dir, session=session)

        report = await registry.reload()

        assert registry.get("broken").tools == ()
        assert [t.name for t in registry.get("good").tools] == ["a", "b"]
        assert "broken" in report.failures
        assert not report.ok

    @pytest.mark.asyncio
    async def test_extension_is_stripped(self, provider_dir):
        touch_executable(provider_dir, "calc.sh")
        registry = ProviderRegistry(provider_dir, session=ScriptedSession({"calc": ["add"]}))
        await registry.reload()
        endpoint, local_name = registry.resolve("calc.add")
        assert endpoint.executable_path.endswith("calc.sh")
        assert local_name == "add"

    @pytest.mark.asyncio
    async def test_collision_later_file_wins(self, provider_dir):
        touch_executable(provider_dir, "calc.py")
        touch_executable(provider_dir, "calc.sh")
        registry = ProviderRegistry(provider_dir, session=ScriptedSession({"calc": ["add"]}))

        report = await registry.reload()

        assert registry.get("calc").executable_path.endswith("calc.sh")
        assert report.collisions == ["calc"]

    @pytest.mark.asyncio
    async def test_collision_strict_keeps_old_snapshot(self, provider_dir):
        touch_executable(provider_dir, "calc.py")
        session = ScriptedSession({"calc": ["add"]})
        registry = ProviderRegistry(provider_dir, session=session, strict_identifiers=True)
        await registry.reload()

        touch_executable(provider_dir, "calc.sh")
        with pytest.raises(DiscoveryError, match="Identifier 'calc'"):
            await registry.reload()
        assert registry.get("calc").executable_path.endswith("calc.py")

    @pytest.mark.asyncio
    async def test_reload_replaces_wholesale(self, provider_dir):
        old = touch_executable(provider_dir, "old")
        session = ScriptedSession({"old": ["a"], "new": ["b"]})
        registry = ProviderRegistry(provider_dir, session=session)
        await registry.reload()

        old.unlink()
        touch_executable(provider_dir, "new")
        await registry.reload()

        assert registry.identifiers() == ["new"]
        with pytest.raises(ToolNotFoundError):
            registry.resolve("old.a")

    @pytest.mark.asyncio
    async def test_unreadable_directory_keeps_snapshot(self, provider_dir, tmp_path):
        touch_executable(provider_dir, "p")
        registry = ProviderRegistry(provider_dir, session=ScriptedSession({"p": ["t"]}))
        await registry.reload()

        with pytest.raises(DiscoveryError):
            await registry.reload(tmp_path / "gone")
        assert registry.identifiers() == ["p"]

    @pytest.mark.asyncio
    async def test_no_directory_configured(self):
        with pytest.raises(DiscoveryError, match="no MCP directory"):
            await ProviderRegistry(session=ScriptedSession()).reload()

    @pytest.mark.asyncio
    async def test_empty_directory(self, provider_dir):
        registry = ProviderRegistry(provider_dir, session=ScriptedSession())
        report = await registry.reload()
        assert report.endpoints == 0
        assert registry.list_all_tools() == []


class TestResolve:
    @pytest.mark.asyncio
    async def test_resolve(self, provider_dir):
        touch_executable(provider_dir, "calculator-mcp")
        registry = ProviderRegistry(
            provider_dir, session=ScriptedSession({"calculator-mcp": ["add"]})
        )
        await registry.reload()

        endpoint, local_name = registry.resolve("calculator-mcp.add")
        assert endpoint.identifier == "calculator-mcp"
        assert local_name == "add"

        # Local names may contain dots; only the first one separates
        _, local_name = registry.resolve("calculator-mcp.math.add")
        assert local_name == "math.add"

    def test_unknown_provider(self):
        registry = ProviderRegistry(session=ScriptedSession())
        with pytest.raises(ToolNotFoundError, match="MCP not found: ghost"):
            registry.resolve("ghost.doSomething")

    def test_missing_separator(self):
        registry = ProviderRegistry(session=ScriptedSession())
        with pytest.raises(ToolNotFoundError):
            registry.resolve("doSomething")


class TestCatalog:
    @pytest.mark.asyncio
    async def test_tool_catalog_uses_namespaced_names(self, provider_dir):
        touch_executable(provider_dir, "hello-mcp")
        registry = ProviderRegistry(provider_dir, session=ScriptedSession({"hello-mcp": ["hello"]}))
        await registry.reload()
        assert registry.tool_catalog() == [{"name": "hello-mcp.hello"}]
        # The stored descriptor keeps its local name
        assert registry.get("hello-mcp").tools[0].name == "hello"

    def test_snapshot_is_read_only(self):
        registry = ProviderRegistry(session=ScriptedSession())
        with pytest.raises(TypeError):
            registry.snapshot()["x"] = None


# ── Concurrency ──────────────────────────────────────────────

class TestConcurrentReload:
    @pytest.mark.asyncio
    async def test_readers_never_see_partial_snapshot(self, provider_dir):
        for name in ("p1", "p2", "p3"):
            touch_executable(provider_dir, name)
        catalogs = {"p1": ["a"], "p2": ["b", "c"], "p3": ["d"]}

        registry = ProviderRegistry(provider_dir, session=ScriptedSession(catalogs))
        await registry.reload()
        before = sorted(n for n, _ in registry.list_all_tools())

        catalogs = {"p1": ["a2"], "p2": ["b2"], "p3": ["d2", "e2"]}
        gate = asyncio.Event()
        registry.session = ScriptedSession(catalogs, gate=gate)
        reload_task = asyncio.create_task(registry.reload())

        observed = []
        for _ in range(5):
            await asyncio.sleep(0)
            observed.append(sorted(n for n, _ in registry.list_all_tools()))
        gate.set()
        await reload_task
        observed.append(sorted(n for n, _ in registry.list_all_tools()))

        after = ["p1.a2", "p2.b2", "p3.d2", "p3.e2"]
        assert all(seen in (before, after) for seen in observed)
        assert observed[0] == before
        assert observed[-1] == after

    @pytest.mark.asyncio
    async def test_snapshot_held_by_reader_survives_reload(self, provider_dir):
        touch_executable(provider_dir, "p")
        registry = ProviderRegistry(provider_dir, session=ScriptedSession({"p": ["old"]}))
        await registry.reload()
        held = registry.snapshot()

        registry.session = ScriptedSession({"p": ["new"]})
        await registry.reload()

        assert held["p"].tools[0].name == "old"
        assert registry.snapshot()["p"].tools[0].name == "new"

    def test_threaded_readers_during_swaps(self):
        from mcpnet.models import ProviderEndpoint, ToolDescriptor

        def generation(n):
            return [
                ProviderEndpoint(f"p{i}", f"/x/p{i}", (ToolDescriptor(f"t{n}"),))
                for i in range(10)
            ]

        registry = ProviderRegistry(session=ScriptedSession())
        registry.load_endpoints(generation(0))
        errors = []
        stop = threading.Event()

        def reader():
            while not stop.is_set():
                tools = registry.list_all_tools()
                suffixes = {name.split(".", 1)[1] for name, _ in tools}
                if len(tools) != 10 or len(suffixes) != 1:
                    errors.append(tools)

        threads = [threading.Thread(target=reader) for _ in range(4)]
        for t in threads:
            t.start()
        for n in range(1, 200):
            registry.load_endpoints(generation(n))
        stop.set()
        for t in threads:
            t.join()

        assert errors == []


class TestReadWriteLock:
    def test_readers_share(self):
        lock = ReadWriteLock()
        with lock.read():
            with lock.read():
                pass

    def test_writer_waits_for_readers(self):
        lock = ReadWriteLock()
        events = []
        reading = threading.Event()
        release = threading.Event()

        def reader():
            with lock.read():
                reading.set()
                release.wait(5)
                events.append("read-done")

        def writer():
            reading.wait(5)
            with lock.write():
                events.append("write")

        threads = [threading.Thread(target=reader), threading.Thread(target=writer)]
        for t in threads:
            t.start()
        reading.wait(5)
        release.set()
        for t in threads:
            t.join(5)

        assert events == ["read-done", "write"]


# ── Real providers ───────────────────────────────────────────

class TestRealProviders:
    @pytest.mark.asyncio
    async def test_broken_provider_does_not_affect_others(self, make_provider):
        make_provider("good-mcp")
        make_provider("hang-mcp", mode="hang")
        make_provider("crash-mcp", mode="crash")

        registry = ProviderRegistry(discovery_timeout=1.0)
        report = await registry.reload(make_provider("other-mcp").parent)

        assert sorted(registry.identifiers()) == ["crash-mcp", "good-mcp", "hang-mcp", "other-mcp"]
        assert len(registry.get("good-mcp").tools) == 2
        assert len(registry.get("other-mcp").tools) == 2
        assert registry.get("hang-mcp").tools == ()
        assert registry.get("crash-mcp").tools == ()
        assert set(report.failures) == {"hang-mcp", "crash-mcp"}

    @pytest.mark.asyncio
    async def test_deeply_nested_catalog_does_not_abort_reload(self, make_provider):
        make_provider("good")
        directory = make_provider("deep", mode="deep").parent

        registry = ProviderRegistry(discovery_timeout=10.0)
        report = await registry.reload(directory)

        assert len(registry.get("good").tools) == 2
        assert registry.get("deep").tools == ()
        assert set(report.failures) == {"deep"}
