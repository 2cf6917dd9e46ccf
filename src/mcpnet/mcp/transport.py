"""
Transport layer for MCP tool communication.

Implements StdioTransport: newline-delimited JSON-RPC over the
stdin/stdout pipes of an asyncio subprocess. One line = one message.
"""

from __future__ import annotations

import asyncio
import collections
import logging
from typing import Any

from ..errors import ProtocolError, TransportError
from .protocol import JsonRpcRequest, JsonRpcResponse

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGE_BYTES = 16 * 1024 * 1024
READ_CHUNK_BYTES = 64 * 1024
STDERR_TAIL_BYTES = 4096


class MessageReader:
    """
    Reassembles newline-terminated messages from a byte stream.

    A single read may return part of a message, several messages, or
    a message plus the start of the next one; leftovers stay buffered
    for the following call.
    """

    def __init__(
        self,
        stream: asyncio.StreamReader,
        max_message_bytes: int = DEFAULT_MAX_MESSAGE_BYTES,
        chunk_size: int = READ_CHUNK_BYTES,
    ):
        self._stream = stream
        self._buffer = bytearray()
        # Set while dropping the rest of an oversized line
        self._skipping = False
        self.max_message_bytes = max_message_bytes
        self.chunk_size = chunk_size

    async def read_message(self) -> bytes | None:
        """
        Return the next non-blank message without its newline.

        Returns None at end of stream. Trailing bytes without a final
        newline are returned as the last message.

        Raises ProtocolError for a message over max_message_bytes; the
        offending line is dropped, so the next call resumes after it.
        """
        while True:
            end = self._buffer.find(b"\n")
            if self._skipping:
                if end < 0:
                    self._buffer.clear()
                else:
                    del self._buffer[: end + 1]
                    self._skipping = False
                    continue
            elif end >= 0:
                line = bytes(self._buffer[:end])
                del self._buffer[: end + 1]
                if end > self.max_message_bytes:
                    raise self._too_large()
                if line.strip():
                    return line
                continue
            elif len(self._buffer) > self.max_message_bytes:
                self._buffer.clear()
                self._skipping = True
                raise self._too_large()

            chunk = await self._stream.read(self.chunk_size)
            if not chunk:
                rest = bytes(self._buffer).strip()
                self._buffer.clear()
                return rest or None
            self._buffer.extend(chunk)

    def _too_large(self) -> ProtocolError:
        return ProtocolError(f"message exceeds {self.max_message_bytes} bytes")


class StdioTransport:
    """
    JSON-RPC over stdin/stdout pipes to a subprocess.

    The provider runs as a child process. We write JSON-RPC requests
    to its stdin and read responses from its stdout. stderr is drained
    in the background so a chatty provider never blocks on a full pipe.
    """

    def __init__(
        self,
        command: list[str],
        env: dict[str, str] | None = None,
        max_message_bytes: int = DEFAULT_MAX_MESSAGE_BYTES,
    ):
        self.command = command
        self.env = env
        self.max_message_bytes = max_message_bytes
        self._process: asyncio.subprocess.Process | None = None
        self._reader: MessageReader | None = None
        self._stderr_tail: collections.deque[bytes] = collections.deque()
        self._stderr_size = 0
        self._stderr_task: asyncio.Task | None = None
        self._request_id = 0

    async def __aenter__(self) -> StdioTransport:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    async def start(self) -> None:
        """Launch the provider subprocess."""
        if self.is_alive():
            logger.warning("Transport already running, stopping first")
            await self.stop()

        logger.debug(f"Starting stdio transport: {' '.join(self.command)}")
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.env,
            )
        except OSError as e:
            raise TransportError(f"failed to start MCP {self.command[0]}: {e}") from e

        self._reader = MessageReader(self._process.stdout, self.max_message_bytes)
        self._stderr_task = asyncio.create_task(self._drain_stderr(self._process.stderr))

    async def stop(self) -> None:
        """Kill the provider subprocess and reap it. Safe to call twice."""
        process, self._process = self._process, None
        if process is None:
            return

        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()

        if self._stderr_task is not None:
            self._stderr_task.cancel()
            self._stderr_task = None
        logger.debug(f"Stdio transport stopped (pid {process.pid})")

    def is_alive(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def send(self, request: JsonRpcRequest) -> None:
        """Write one request line to the provider's stdin."""
        if self._process is None or self._process.stdin is None:
            raise TransportError("Transport not running. Call start() first.")

        logger.debug(f"-> {request.to_json()}")
        try:
            self._process.stdin.write(request.to_line())
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise TransportError(
                f"failed to send {request.method} message: {e}{self._stderr_hint()}"
            ) from e

    async def receive(self) -> JsonRpcResponse:
        """Read the next complete message from the provider's stdout."""
        if self._reader is None:
            raise TransportError("Transport not running. Call start() first.")

        try:
            line = await self._reader.read_message()
        except (ConnectionResetError, BrokenPipeError) as e:
            raise TransportError(f"failed to read response: {e}") from e

        if line is None:
            raise TransportError(f"Tool server process closed its output.{self._stderr_hint()}")

        logger.debug(f"<- {line[:500]!r}")
        return JsonRpcResponse.from_json(line)

    async def request(self, request: JsonRpcRequest) -> JsonRpcResponse:
        """Send a request and wait for the response that answers it."""
        await self.send(request)
        while True:
            response = await self.receive()
            if response.answers(request):
                return response
            logger.debug(
                f"Skipping unrelated message while waiting for {request.method} "
                f"(id={response.id}, method={response.method})"
            )

    def next_id(self) -> int:
        self._request_id += 1
        return self._request_id

    @property
    def stderr_tail(self) -> str:
        return b"".join(self._stderr_tail).decode("utf-8", errors="replace")

    async def _drain_stderr(self, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(READ_CHUNK_BYTES)
            if not chunk:
                return
            self._stderr_tail.append(chunk)
            self._stderr_size += len(chunk)
            while self._stderr_size > STDERR_TAIL_BYTES and len(self._stderr_tail) > 1:
                self._stderr_size -= len(self._stderr_tail.popleft())

    def _stderr_hint(self) -> str:
        tail = self.stderr_tail.strip()
        return f" stderr: {tail[-500:]}" if tail else ""
