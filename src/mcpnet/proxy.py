"""
stdio-to-HTTP proxy.

Lets a client that only speaks stdio (one JSON-RPC message per line)
talk to an mcpnet server running in HTTP mode:

    client <-> mcpnet-proxy (stdin/stdout) <-> POST http://host:8080
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
from typing import Any, Callable

import httpx

from .config import ProxyConfig
from .errors import ProtocolError
from .mcp.protocol import INVALID_REQUEST, error_response
from .mcp.transport import DEFAULT_MAX_MESSAGE_BYTES, MessageReader
from .server import open_stdin, write_stdout

logger = logging.getLogger(__name__)


class HttpForwarder:
    """Forwards raw request bodies to one HTTP endpoint, one at a time."""

    def __init__(self, config: ProxyConfig, client: httpx.AsyncClient | None = None):
        self.config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout)
        self._lock = asyncio.Lock()

    async def forward(self, body: bytes) -> bytes:
        """POST one request and return the response body; raises httpx.HTTPError on failure."""
        async with self._lock:
            response = await self._client.post(
                self.config.endpoint,
                content=body,
                headers={"Content-Type": self.config.content_type},
            )
        if response.status_code != 200:
            raise httpx.HTTPStatusError(
                f"received non-OK response: {response.status_code}",
                request=response.request,
                response=response,
            )
        return response.content

    async def aclose(self) -> None:
        await self._client.aclose()


async def run_proxy(
    config: ProxyConfig,
    reader: Any = None,
    write: Callable[[bytes], None] | None = None,
    client: httpx.AsyncClient | None = None,
    handle_signals: bool = True,
    max_message_bytes: int = DEFAULT_MAX_MESSAGE_BYTES,
) -> None:
    """Relay stdin lines to the endpoint until EOF or SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    messages = MessageReader(
        reader if reader is not None else await open_stdin(), max_message_bytes
    )
    write = write or write_stdout
    forwarder = HttpForwarder(config, client)
    stop = asyncio.Event()

    installed: list[int] = []
    if handle_signals:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                pass

    logger.info(f"MCP Proxy started. Forwarding requests to {config.endpoint}")
    stopped = asyncio.create_task(stop.wait())
    try:
        while True:
            step = asyncio.create_task(_relay_one(messages, forwarder, write))
            done, _ = await asyncio.wait({step, stopped}, return_when=asyncio.FIRST_COMPLETED)
            if stopped in done:
                step.cancel()
                logger.info("MCP Proxy shutting down")
                break
            if not step.result():
                break
    finally:
        stopped.cancel()
        for sig in installed:
            loop.remove_signal_handler(sig)
        await forwarder.aclose()


async def _relay_one(
    messages: MessageReader, forwarder: HttpForwarder, write: Callable[[bytes], None]
) -> bool:
    """Relay a single message. Returns False when input is exhausted."""
    try:
        raw = await messages.read_message()
    except ProtocolError as e:
        logger.error(f"Error reading from stdin: {e}")
        frame = error_response(None, INVALID_REQUEST, str(e))
        write(json.dumps(frame).encode("utf-8") + b"\n")
        return True
    if raw is None:
        return False

    try:
        body = await forwarder.forward(raw)
    except httpx.HTTPError as e:
        logger.error(f"Error processing request: {e}")
        return True

    write(body.rstrip(b"\n") + b"\n")
    return True
