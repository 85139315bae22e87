"""Arithmetic evaluator tool.

Expressions are tokenized and parsed by a small recursive-descent parser
over numbers, the four basic operators, unary signs and parentheses.
Nothing the caller sends is ever executed as code.

Grammar:
    expr   := term (('+' | '-') term)*
    term   := unary (('*' | '/') unary)*
    unary  := ('+' | '-') unary | atom
    atom   := NUMBER | '(' expr ')'
"""

import re
from typing import Any

from .base import Tool, ToolResult

MAX_EXPRESSION_LENGTH = 500

_TOKEN_RE = re.compile(
    r"\s*(?:(?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)|(?P<op>[-+*/()]))"
)


class ExpressionError(ValueError):
    """Raised for expressions outside the supported grammar."""


def tokenize(expression: str) -> list[str]:
    """Split an expression into number and operator tokens."""
    tokens: list[str] = []
    pos = 0
    expression = expression.rstrip()
    while pos < len(expression):
        match = _TOKEN_RE.match(expression, pos)
        if match is None or match.end() == pos:
            raise ExpressionError(f"Unexpected character {expression[pos:].lstrip()[:1]!r} at position {pos}")
        tokens.append(match.group("number") or match.group("op"))
        pos = match.end()
    return tokens


class _Parser:
    def __init__(self, tokens: list[str]) -> None:
        self.tokens = tokens
        self.pos = 0

    def peek(self) -> str | None:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def take(self) -> str:
        token = self.peek()
        if token is None:
            raise ExpressionError("Unexpected end of expression")
        self.pos += 1
        return token

    def parse(self) -> float:
        if not self.tokens:
            raise ExpressionError("Empty expression")
        value = self.expr()
        if self.peek() is not None:
            raise ExpressionError(f"Unexpected token {self.peek()!r}")
        return value

    def expr(self) -> float:
        value = self.term()
        while self.peek() in ("+", "-"):
            if self.take() == "+":
                value += self.term()
            else:
                value -= self.term()
        return value

    def term(self) -> float:
        value = self.unary()
        while self.peek() in ("*", "/"):
            if self.take() == "*":
                value *= self.unary()
            else:
                divisor = self.unary()
                if divisor == 0:
                    raise ExpressionError("Division by zero")
                value /= divisor
        return value

    def unary(self) -> float:
        if self.peek() == "+":
            self.take()
            return self.unary()
        if self.peek() == "-":
            self.take()
            return -self.unary()
        return self.atom()

    def atom(self) -> float:
        token = self.take()
        if token == "(":
            value = self.expr()
            if self.take() != ")":
                raise ExpressionError("Expected ')'")
            return value
        if token in ("+", "-", "*", "/", ")"):
            raise ExpressionError(f"Unexpected token {token!r}")
        return float(token)


def evaluate(expression: str) -> float:
    """Evaluate an arithmetic expression.

    Raises:
        ExpressionError: If the expression is malformed or divides by zero.
    """
    return _Parser(tokenize(expression)).parse()


def format_number(value: float) -> str:
    """Render integral results without a trailing '.0'."""
    if value != value or value in (float("inf"), float("-inf")):
        raise ExpressionError("Result is not a finite number")
    if value.is_integer():
        return str(int(value))
    return repr(value)


class CalculatorTool(Tool):
    """Evaluates simple arithmetic expressions."""

    @property
    def name(self) -> str:
        return "math_evaluator"

    @property
    def description(self) -> str:
        return (
            "Evaluates a simple arithmetic expression with numbers, + - * / "
            "and parentheses, like \"2+2*3\"."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "expression": {
                    "type": "string",
                    "description": 'An arithmetic expression like "(1.5 + 2) * 4"',
                },
            },
            "required": ["expression"],
        }

    @property
    def output_schema(self) -> dict[str, Any]:
        return {"type": "string"}

    async def execute(self, **kwargs: Any) -> ToolResult:
        expression = kwargs.get("expression", "")

        if not isinstance(expression, str):
            return ToolResult(
                success=False,
                output="",
                error="Error evaluating expression: expression must be a string",
            )
        if len(expression) > MAX_EXPRESSION_LENGTH:
            return ToolResult(
                success=False,
                output="",
                error="Error evaluating expression: expression is too long",
            )

        try:
            return ToolResult(success=True, output=format_number(evaluate(expression)))
        except (ExpressionError, OverflowError, RecursionError) as e:
            return ToolResult(
                success=False,
                output="",
                error=f"Error evaluating expression: {e}",
            )
