"""
Hello tool provider.

Provides: hello (greets someone by name).

Run as:
    python -m mcpnet.mcp.servers.hello
"""

from __future__ import annotations

from typing import Any

from mcpnet.mcp.provider import StdioToolServer, ToolHandler, text_result


class HelloTool(ToolHandler):
    name = "hello"
    description = "Say hello to someone"
    parameters = {
        "name": {"type": "string", "description": "Name of the person to greet"},
    }

    def handle(self, params: dict[str, Any]) -> dict:
        name = params.get("name") or "World"
        return text_result(f"Hello, {name}!")


def main():
    server = StdioToolServer("Hello MCP")
    server.register(HelloTool())
    server.run()


if __name__ == "__main__":
    main()
