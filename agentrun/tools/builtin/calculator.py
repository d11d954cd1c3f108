"""
Arithmetic calculator tool.

Expressions are parsed with `ast` and evaluated node by node; only numeric
literals, arithmetic operators and a small set of math functions are allowed.
"""

import ast
import math
import operator
from typing import Any, Callable

from agentrun.tools.decorator import tool

_BINARY_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "abs": abs,
    "round": round,
    "min": min,
    "max": max,
    "sqrt": math.sqrt,
    "log": math.log,
    "exp": math.exp,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
}

_CONSTANTS = {"pi": math.pi, "e": math.e}

MAX_EXPONENT = 1000
MAX_RESULT_DIGITS = 10_000


def _check_power(base: Any, exponent: Any) -> None:
    """Reject powers whose result would be too large to compute quickly."""
    if abs(exponent) > MAX_EXPONENT:
        raise ValueError(f"Exponent too large: {exponent}")
    if exponent > 0 and abs(base) > 1:
        # digits of base ** exponent, roughly
        if exponent * math.log10(abs(base)) > MAX_RESULT_DIGITS:
            raise ValueError("Result too large")


def _eval(node: ast.AST) -> Any:
    if isinstance(node, ast.Expression):
        return _eval(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(
        node.value, bool
    ):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left, right = _eval(node.left), _eval(node.right)
        if isinstance(node.op, ast.Pow):
            _check_power(left, right)
        return _BINARY_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval(node.operand))
    if isinstance(node, ast.Name) and node.id in _CONSTANTS:
        return _CONSTANTS[node.id]
    if (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Name)
        and node.func.id in _FUNCTIONS
        and not node.keywords
    ):
        return _FUNCTIONS[node.func.id](*(_eval(arg) for arg in node.args))
    raise ValueError(f"Unsupported expression element: {ast.dump(node)[:60]}")


def evaluate(expression: str) -> int | float:
    """Evaluate an arithmetic expression without `eval`."""
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise ValueError(f"Invalid expression: {expression!r}") from e
    try:
        return _eval(tree)
    except ZeroDivisionError as e:
        raise ValueError("Division by zero") from e
    except OverflowError as e:
        raise ValueError("Result too large") from e


def format_number(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return str(value)


@tool
def calculator(expression: str) -> str:
    """
    Perform mathematical calculations.

    Args:
        expression: Mathematical expression to evaluate (e.g., "2 + 2", "10 * 5", "sqrt(16)")

    Returns:
        Result of the calculation as a string
    """
    return format_number(evaluate(expression))


__all__ = ["calculator", "evaluate", "format_number"]
