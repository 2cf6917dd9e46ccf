"""
Transport adapters that feed raw requests into the Dispatcher.

- HTTP: a FastAPI app that accepts POST on any path (served by uvicorn)
- stdio: newline-delimited JSON-RPC on stdin/stdout
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from typing import Any, Awaitable, Callable

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

from .config import ServerConfig
from .dispatcher import Dispatcher, error_frame_for
from .errors import DispatchError, ProtocolError
from .mcp.protocol import INVALID_REQUEST, error_response
from .mcp.transport import DEFAULT_MAX_MESSAGE_BYTES, MessageReader
from .registry import ProviderRegistry

logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

# Nginx's status for a request the client abandoned
CLIENT_CLOSED_REQUEST = 499


# ── HTTP ─────────────────────────────────────────────────────

def create_app(dispatcher: Dispatcher, name: str = "MCP Server", version: str = "1.0.0") -> FastAPI:
    """Build the HTTP app. Every path accepts a JSON-RPC request via POST."""
    app = FastAPI(title=name, version=version, docs_url=None, redoc_url=None, openapi_url=None)

    @app.api_route("/{path:path}", methods=ALL_METHODS)
    async def rpc(request: Request, path: str) -> Response:
        if request.method != "POST":
            return PlainTextResponse(
                "Method not allowed", status_code=405, headers={"Allow": "POST"}
            )

        body = await request.body()
        try:
            reply = await _unless_disconnected(request, dispatcher.handle(body))
        except DispatchError as e:
            logger.error(f"Failed to process request on /{path}: {e}")
            return PlainTextResponse(f"Failed to process request: {e}", status_code=500)

        if reply is None:
            logger.info(f"Client disconnected from /{path}, request cancelled")
            return Response(status_code=CLIENT_CLOSED_REQUEST)

        return Response(content=reply, media_type="application/json")

    return app


async def _wait_for_disconnect(request: Request) -> None:
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def _unless_disconnected(request: Request, work: Awaitable[bytes]) -> bytes | None:
    """
    Await `work`, cancelling it if the client goes away first.

    Returns None on disconnect. Cancellation reaches the provider
    session, which kills the child process before this returns.
    """
    task = asyncio.ensure_future(work)
    watcher = asyncio.create_task(_wait_for_disconnect(request))
    try:
        await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        watcher.cancel()
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
    if task.cancelled():
        return None
    return task.result()


async def serve_http(dispatcher: Dispatcher, config: ServerConfig) -> None:
    import uvicorn

    app = create_app(dispatcher, config.name, config.version)
    server = uvicorn.Server(uvicorn.Config(
        app=app,
        host=config.host,
        port=config.port,
        log_level="warning",
    ))
    logger.info(f"MCP Server listening on {config.host}:{config.port}")
    await server.serve()


# ── stdio ────────────────────────────────────────────────────

class _FileReader:
    """Async read() over a regular file, which can't be a pipe transport."""

    def __init__(self, stream: Any):
        self._stream = stream

    async def read(self, n: int) -> bytes:
        return await asyncio.to_thread(self._stream.read1, n)


async def open_stdin() -> Any:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    try:
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    except ValueError:
        # stdin redirected from a regular file
        return _FileReader(sys.stdin.buffer)
    return reader


def write_stdout(data: bytes) -> None:
    sys.stdout.buffer.write(data)
    sys.stdout.buffer.flush()


async def serve_stdio(
    dispatcher: Dispatcher,
    reader: Any = None,
    write: Callable[[bytes], None] | None = None,
    handle_signals: bool = True,
    max_message_bytes: int = DEFAULT_MAX_MESSAGE_BYTES,
) -> None:
    """
    Answer newline-delimited requests from stdin until EOF or a signal.

    Each request runs as its own task; responses are written one per
    line in completion order. A line over max_message_bytes is answered
    with an invalid-request frame and skipped. On EOF in-flight requests
    are allowed to finish. On SIGINT/SIGTERM they are cancelled, which
    kills their provider processes.
    """
    loop = asyncio.get_running_loop()
    messages = MessageReader(
        reader if reader is not None else await open_stdin(), max_message_bytes
    )
    write = write or write_stdout
    write_lock = asyncio.Lock()
    in_flight: set[asyncio.Task] = set()
    stop = asyncio.Event()

    installed: list[int] = []
    if handle_signals:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                pass

    async def respond(raw: bytes) -> None:
        try:
            reply = await dispatcher.handle(raw)
        except DispatchError as e:
            logger.error(f"Error processing request: {e}")
            reply = error_frame_for(raw, e)
        except Exception as e:
            logger.exception("Unexpected error processing request")
            reply = error_frame_for(raw, e)
        async with write_lock:
            write(reply + b"\n")

    stopped = asyncio.create_task(stop.wait())
    try:
        while True:
            read = asyncio.create_task(messages.read_message())
            done, _ = await asyncio.wait({read, stopped}, return_when=asyncio.FIRST_COMPLETED)

            if stopped in done:
                read.cancel()
                logger.info("Received shutdown signal, shutting down...")
                for task in in_flight:
                    task.cancel()
                break

            try:
                raw = read.result()
            except ProtocolError as e:
                logger.error(f"Error reading from stdin: {e}")
                frame = error_response(None, INVALID_REQUEST, str(e))
                async with write_lock:
                    write(json.dumps(frame).encode("utf-8") + b"\n")
                continue
            if raw is None:
                break

            task = asyncio.create_task(respond(raw))
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)

        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)
    finally:
        stopped.cancel()
        for sig in installed:
            loop.remove_signal_handler(sig)


# ── Entry ────────────────────────────────────────────────────

async def run(config: ServerConfig) -> None:
    """Load the registry from config.mcp_dir and serve until stopped."""
    registry = ProviderRegistry(
        config.mcp_dir,
        discovery_timeout=config.discovery_timeout,
        max_concurrency=config.max_concurrency,
        strict_identifiers=config.strict_identifiers,
    )
    report = await registry.reload()
    logger.info(
        f"Registry loaded: {report.endpoints} providers, {report.tools} tools "
        f"({len(report.failures)} failed discovery)"
    )

    dispatcher = Dispatcher(registry, invoke_timeout=config.invoke_timeout)
    if config.stdio:
        logger.info("Starting MCP server in stdio mode")
        await serve_stdio(dispatcher)
    else:
        logger.info(f"Starting MCP server in HTTP mode on {config.http_addr}")
        await serve_http(dispatcher, config)
