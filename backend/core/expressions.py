"""
Evaluation of billable metric expressions.

Expressions compute a per-event value from the event payload, e.g.::

    round(event.properties.duration / 60, 2)
    concat(event.properties.region, '-', event.properties.tier)

Supported: + - * / with parentheses, unary minus, numeric and quoted string
literals, event.code, event.timestamp, event.properties.<name>, and the
functions round, ceil, floor (optional precision) and concat.
Expressions are parsed with the Python grammar and then restricted to this
subset, nothing is executed.
"""

import ast
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal, DivisionByZero, InvalidOperation
from typing import Any


class ExpressionError(ValueError):
    """Raised for expressions that cannot be parsed or evaluated."""


_ROUNDING_MODES = {
    "round": ROUND_HALF_UP,
    "ceil": ROUND_CEILING,
    "floor": ROUND_FLOOR,
}

_EVENT_FIELDS = ("code", "timestamp")


def parse_expression(expression: str) -> ast.Expression:
    """Parse and validate an expression, raising ExpressionError when invalid."""
    if not expression or not expression.strip():
        raise ExpressionError("Expression is empty")
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise ExpressionError(f"Invalid expression: {e.msg}") from e
    _validate(tree.body)
    return tree


def _validate(node: ast.AST) -> None:
    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float, str)):
            raise ExpressionError(f"Unsupported literal: {node.value!r}")
    elif isinstance(node, ast.BinOp):
        if not isinstance(node.op, (ast.Add, ast.Sub, ast.Mult, ast.Div)):
            raise ExpressionError("Unsupported operator")
        _validate(node.left)
        _validate(node.right)
    elif isinstance(node, ast.UnaryOp):
        if not isinstance(node.op, (ast.USub, ast.UAdd)):
            raise ExpressionError("Unsupported operator")
        _validate(node.operand)
    elif isinstance(node, ast.Attribute):
        _attribute_path(node)
    elif isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in (*_ROUNDING_MODES, "concat"):
            raise ExpressionError("Unsupported function")
        if node.keywords:
            raise ExpressionError("Keyword arguments are not supported")
        if node.func.id in _ROUNDING_MODES and not 1 <= len(node.args) <= 2:
            raise ExpressionError(f"{node.func.id} expects one or two arguments")
        if node.func.id == "concat" and not node.args:
            raise ExpressionError("concat expects at least one argument")
        for arg in node.args:
            _validate(arg)
    else:
        raise ExpressionError(f"Unsupported syntax: {type(node).__name__}")


def _attribute_path(node: ast.Attribute) -> list[str]:
    """Return ['event', ...] for an event attribute chain."""
    parts: list[str] = []
    current: ast.AST = node
    while isinstance(current, ast.Attribute):
        parts.append(current.attr)
        current = current.value
    if not isinstance(current, ast.Name) or current.id != "event":
        raise ExpressionError("Only event attributes can be referenced")
    parts.append("event")
    parts.reverse()

    if len(parts) == 2 and parts[1] in _EVENT_FIELDS:
        return parts
    if len(parts) == 3 and parts[1] == "properties":
        return parts
    raise ExpressionError(f"Unknown event attribute: {'.'.join(parts)}")


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ExpressionError(f"Value is not numeric: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ExpressionError(f"Value is not numeric: {value!r}") from e


def _to_text(value: Any) -> str:
    if isinstance(value, Decimal):
        return format_value(value)
    return str(value)


class _Evaluator:
    def __init__(self, event: dict[str, Any]):
        self.event = event
        self.properties = event.get("properties") or {}

    def visit(self, node: ast.AST) -> Any:
        if isinstance(node, ast.Constant):
            if isinstance(node.value, str):
                return node.value
            return Decimal(str(node.value))

        if isinstance(node, ast.Attribute):
            parts = _attribute_path(node)
            if parts[1] == "properties":
                if parts[2] not in self.properties:
                    raise ExpressionError(f"Missing event property: {parts[2]}")
                return self.properties[parts[2]]
            if parts[1] == "timestamp":
                return _to_decimal(self.event.get("timestamp"))
            return self.event.get(parts[1])

        if isinstance(node, ast.UnaryOp):
            operand = _to_decimal(self.visit(node.operand))
            return -operand if isinstance(node.op, ast.USub) else operand

        if isinstance(node, ast.BinOp):
            left = _to_decimal(self.visit(node.left))
            right = _to_decimal(self.visit(node.right))
            try:
                if isinstance(node.op, ast.Add):
                    return left + right
                if isinstance(node.op, ast.Sub):
                    return left - right
                if isinstance(node.op, ast.Mult):
                    return left * right
                return left / right
            except (DivisionByZero, InvalidOperation) as e:
                raise ExpressionError("Division by zero") from e

        if isinstance(node, ast.Call):
            name = node.func.id
            args = [self.visit(arg) for arg in node.args]
            if name == "concat":
                return "".join(_to_text(arg) for arg in args)

            value = _to_decimal(args[0])
            precision = int(_to_decimal(args[1])) if len(args) > 1 else 0
            return round_value(value, name, precision)

        raise ExpressionError(f"Unsupported syntax: {type(node).__name__}")


def round_value(value: Decimal, function: str, precision: int = 0) -> Decimal:
    """Round value with round/ceil/floor at the given number of decimals."""
    exponent = Decimal(1).scaleb(-precision)
    return value.quantize(exponent, rounding=_ROUNDING_MODES[function])


def evaluate_expression(expression: str, event: dict[str, Any]) -> Any:
    """Evaluate expression against an event dict (code, timestamp, properties)."""
    tree = parse_expression(expression)
    return _Evaluator(event).visit(tree.body)


def format_value(value: Any) -> str:
    """Render an evaluation result; whole decimals keep one decimal place."""
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return f"{format(value.to_integral_value(), 'f')}.0"
        return format(value.normalize(), "f")
    return str(value)
