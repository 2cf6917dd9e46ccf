"""
Calculator tool provider.

Provides: add, multiply, divide (two numbers, x and y).

Run as:
    python -m mcpnet.mcp.servers.calculator
"""

from __future__ import annotations

from typing import Any

from mcpnet.mcp.provider import StdioToolServer, ToolError, ToolHandler, text_result


def _operand(params: dict[str, Any], key: str) -> float:
    value = params.get(key)
    # bool is an int subclass but not a number here
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ToolError(f"{key} must be a number")
    return float(value)


class BinaryOperationTool(ToolHandler):
    """A tool taking two numbers, x and y."""
    x_description = "First number"
    y_description = "Second number"

    def __init__(self):
        self.parameters = {
            "x": {"type": "number", "description": self.x_description},
            "y": {"type": "number", "description": self.y_description},
        }
        self.required = ["x", "y"]

    def handle(self, params: dict[str, Any]) -> dict:
        x = _operand(params, "x")
        y = _operand(params, "y")
        return text_result(f"{self.compute(x, y):.2f}")

    def compute(self, x: float, y: float) -> float:
        raise NotImplementedError


class AddTool(BinaryOperationTool):
    name = "add"
    description = "Add two numbers"

    def compute(self, x: float, y: float) -> float:
        return x + y


class MultiplyTool(BinaryOperationTool):
    name = "multiply"
    description = "Multiply two numbers"

    def compute(self, x: float, y: float) -> float:
        return x * y


class DivideTool(BinaryOperationTool):
    name = "divide"
    description = "Divide two numbers"
    x_description = "Numerator"
    y_description = "Denominator"

    def compute(self, x: float, y: float) -> float:
        if y == 0:
            raise ToolError("cannot divide by zero")
        return x / y


def main():
    server = StdioToolServer("Calculator MCP")
    server.register(AddTool())
    server.register(MultiplyTool())
    server.register(DivideTool())
    server.run()


if __name__ == "__main__":
    main()
