"""
JSON-RPC 2.0 codec for the provider protocol.

One message per line on the wire. Requests carry `initialize`,
`tools/list` or `tools/call`; responses carry either `result` or
`error: {code, message}`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from ..errors import ProtocolError, RemoteToolError

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"

# Standard JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SERVER_ERROR = -32000

METHOD_INITIALIZE = "initialize"
METHOD_TOOLS_LIST = "tools/list"
METHOD_TOOLS_CALL = "tools/call"


def _loads(data: str | bytes) -> Any:
    try:
        return json.loads(data)
    except (ValueError, RecursionError) as e:
        # ValueError covers JSONDecodeError and UnicodeDecodeError
        raise ProtocolError(f"invalid JSON: {e}") from e


@dataclass
class JsonRpcRequest:
    """JSON-RPC 2.0 request."""
    method: str
    params: dict[str, Any] | None = None
    id: int | str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": self.id, "method": self.method}
        if self.params is not None:
            out["params"] = self.params
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def to_line(self) -> bytes:
        return (self.to_json() + "\n").encode("utf-8")

    @classmethod
    def from_json(cls, data: str | bytes) -> JsonRpcRequest:
        parsed = _loads(data)
        if isinstance(parsed, list):
            raise ProtocolError("batched requests are not supported")
        if not isinstance(parsed, dict):
            raise ProtocolError(f"request must be a JSON object, got {type(parsed).__name__}")

        method = parsed.get("method")
        if not isinstance(method, str):
            raise ProtocolError("request has no 'method'")

        params = parsed.get("params")
        if params is not None and not isinstance(params, dict):
            raise ProtocolError("'params' must be an object")

        return cls(method=method, params=params, id=parsed.get("id"))


@dataclass
class JsonRpcResponse:
    """JSON-RPC 2.0 response."""
    id: int | str | None
    result: Any = None
    error: dict | None = None
    # Set when the peer sent a request or notification instead of a response
    method: str | None = None

    @classmethod
    def from_json(cls, data: str | bytes) -> JsonRpcResponse:
        parsed = _loads(data)
        if not isinstance(parsed, dict):
            raise ProtocolError(f"response must be a JSON object, got {type(parsed).__name__}")

        error = parsed.get("error")
        if error is not None and not isinstance(error, dict):
            raise ProtocolError(f"'error' must be an object, got {error!r}")

        method = parsed.get("method")
        return cls(
            id=parsed.get("id"),
            result=parsed.get("result"),
            error=error,
            method=method if isinstance(method, str) else None,
        )

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def is_notification(self) -> bool:
        return self.method is not None

    def answers(self, request: JsonRpcRequest) -> bool:
        """True if this message is the response to `request`."""
        if self.is_notification:
            return False
        if self.id == request.id:
            return True
        # Parse errors are reported with a null id
        return self.id is None and self.is_error

    def raise_for_error(self) -> None:
        """Raise RemoteToolError if this response carries an error object."""
        if self.error is None:
            return
        code = self.error.get("code", INTERNAL_ERROR)
        if not isinstance(code, int):
            code = INTERNAL_ERROR
        message = self.error.get("message")
        raise RemoteToolError(code, message if isinstance(message, str) else str(self.error))

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": self.id}
        if self.error is not None:
            out["error"] = self.error
        else:
            out["result"] = self.result
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


# ── Builders ─────────────────────────────────────────────────

def initialize_request(request_id: int | str) -> JsonRpcRequest:
    return JsonRpcRequest(
        method=METHOD_INITIALIZE,
        params={"protocol_version": PROTOCOL_VERSION},
        id=request_id,
    )


def list_tools_request(request_id: int | str) -> JsonRpcRequest:
    return JsonRpcRequest(method=METHOD_TOOLS_LIST, id=request_id)


def call_tool_request(
    request_id: int | str, name: str, arguments: dict[str, Any] | None
) -> JsonRpcRequest:
    return JsonRpcRequest(
        method=METHOD_TOOLS_CALL,
        params={"name": name, "arguments": arguments if arguments is not None else {}},
        id=request_id,
    )


def result_response(request_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def error_response(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": {"code": code, "message": message},
    }
