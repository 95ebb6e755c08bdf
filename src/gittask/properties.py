"""Property definitions: presentation-only typing and styling for task properties.

Definitions never restrict which keys a task may hold. They pick a display
form (datetime formatting, numeric sort) and a color/style, optionally per
enum value or per conditional rule evaluated against the task's bindings.
"""

from __future__ import annotations

import ast
import operator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Protocol

from gittask.defaults import DEFAULT_PROPERTIES
from gittask.errors import EncodingError, NotFoundError, ValidationError

VALUE_TYPES = {"string", "integer", "datetime", "text", "enum"}
_FIELDS = ("name", "value_type", "color", "style")


class Evaluator(Protocol):
    def __call__(self, expression: str, bindings: dict[str, str]) -> bool: ...


@dataclass
class EnumValue:
    name: str
    color: str = "reset"
    style: str | None = None


@dataclass
class ConditionalFormat:
    condition: str
    color: str = "reset"
    style: str | None = None


@dataclass
class PropertyDefinition:
    name: str
    value_type: str = "string"
    color: str = "reset"
    style: str | None = None
    enum_values: list[EnumValue] = field(default_factory=list)
    cond_format: list[ConditionalFormat] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "value_type": self.value_type, "color": self.color}
        if self.style:
            data["style"] = self.style
        if self.enum_values:
            data["enum_values"] = [vars(e).copy() for e in self.enum_values]
        if self.cond_format:
            data["cond_format"] = [vars(c).copy() for c in self.cond_format]
        return data

    @classmethod
    def from_dict(cls, data: Any) -> PropertyDefinition:
        if not isinstance(data, dict) or not data.get("name"):
            raise EncodingError("Property definition must be an object with a name")
        value_type = str(data.get("value_type") or "string")
        if value_type not in VALUE_TYPES:
            raise EncodingError(f"Property '{data['name']}': unknown value_type '{value_type}'")
        try:
            enums = [EnumValue(**e) for e in data.get("enum_values") or []]
            conds = [ConditionalFormat(**c) for c in data.get("cond_format") or []]
        except TypeError as exc:
            raise EncodingError(f"Property '{data['name']}': {exc}") from exc
        return cls(
            name=str(data["name"]),
            value_type=value_type,
            color=str(data.get("color") or "reset"),
            style=data.get("style") or None,
            enum_values=enums,
            cond_format=conds,
        )


def format_datetime(value: str) -> str:
    """Epoch seconds -> 'YYYY-MM-DD HH:MM' local time; blank for 0 or garbage."""
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return value
    if seconds == 0:
        return ""
    return datetime.fromtimestamp(seconds).strftime("%Y-%m-%d %H:%M")


class PropertyTable:
    def __init__(self, properties: list[PropertyDefinition] | None = None):
        self.properties = list(properties) if properties is not None else self.defaults()

    @staticmethod
    def defaults() -> list[PropertyDefinition]:
        return [PropertyDefinition.from_dict(p) for p in DEFAULT_PROPERTIES]

    @classmethod
    def from_list(cls, items: Any) -> PropertyTable:
        if not isinstance(items, list):
            raise EncodingError("Property list must be a list")
        table = cls([PropertyDefinition.from_dict(item) for item in items])
        names = [p.name for p in table.properties]
        if len(set(names)) != len(names):
            raise ValidationError("Property names must be unique")
        return table

    def to_list(self) -> list[dict[str, Any]]:
        return [p.to_dict() for p in self.properties]

    def find(self, name: str) -> PropertyDefinition | None:
        return next((p for p in self.properties if p.name == name), None)

    def get(self, name: str) -> PropertyDefinition:
        prop = self.find(name)
        if prop is None:
            raise NotFoundError(f"Unknown property '{name}'")
        return prop

    def value_type(self, name: str) -> str:
        prop = self.find(name)
        return prop.value_type if prop else "string"

    # --- edits ---

    def add(self, prop: PropertyDefinition) -> None:
        if self.find(prop.name):
            raise ValidationError(f"Property '{prop.name}' already exists")
        self.properties.append(prop)

    def delete(self, name: str) -> None:
        self.properties.remove(self.get(name))

    def get_field(self, name: str, field_name: str) -> str:
        if field_name not in _FIELDS:
            raise ValidationError(f"Unknown property field '{field_name}'. Valid: {', '.join(_FIELDS)}")
        return getattr(self.get(name), field_name) or ""

    def set_field(self, name: str, field_name: str, value: str) -> str:
        if field_name not in _FIELDS:
            raise ValidationError(f"Unknown property field '{field_name}'. Valid: {', '.join(_FIELDS)}")
        prop = self.get(name)
        if field_name == "name" and value != name and self.find(value):
            raise ValidationError(f"Property '{value}' already exists")
        if field_name == "value_type" and value not in VALUE_TYPES:
            raise ValidationError(f"Unknown value_type '{value}'. Valid: {', '.join(sorted(VALUE_TYPES))}")
        previous = getattr(prop, field_name) or ""
        if field_name == "style":
            prop.style = value or None
        else:
            setattr(prop, field_name, value)
        return previous

    def add_enum(self, name: str, value: str, color: str, style: str | None = None) -> None:
        prop = self.get(name)
        if any(e.name == value for e in prop.enum_values):
            raise ValidationError(f"Enum value '{value}' already exists for '{name}'")
        prop.enum_values.append(EnumValue(value, color, style))

    def set_enum(self, name: str, value: str, color: str, style: str | None = None) -> None:
        enum = next((e for e in self.get(name).enum_values if e.name == value), None)
        if enum is None:
            raise NotFoundError(f"Enum value '{value}' not found for '{name}'")
        enum.color = color
        enum.style = style

    def delete_enum(self, name: str, value: str) -> None:
        prop = self.get(name)
        remaining = [e for e in prop.enum_values if e.name != value]
        if len(remaining) == len(prop.enum_values):
            raise NotFoundError(f"Enum value '{value}' not found for '{name}'")
        prop.enum_values = remaining

    def add_condition(self, name: str, condition: str, color: str, style: str | None = None) -> None:
        self.get(name).cond_format.append(ConditionalFormat(condition, color, style))

    def clear_conditions(self, name: str) -> int:
        prop = self.get(name)
        count = len(prop.cond_format)
        prop.cond_format = []
        return count

    # --- presentation ---

    def display_value(self, name: str, value: str) -> str:
        if self.value_type(name) == "datetime":
            return format_datetime(value)
        return value

    def pick_style(
        self,
        name: str,
        value: str,
        bindings: dict[str, str],
        evaluator: Evaluator | None = None,
    ) -> tuple[str, str | None]:
        """(color, style) for a value: first matching rule, then enum value, then default."""
        prop = self.find(name)
        if prop is None:
            return "reset", None
        if evaluator is not None:
            for rule in prop.cond_format:
                if evaluator(rule.condition, bindings):
                    return rule.color, rule.style
        for enum in prop.enum_values:
            if enum.name == value:
                return enum.color, enum.style
        return prop.color, prop.style


# ---------------------------------------------------------------------------
# Conditional-format expressions
# ---------------------------------------------------------------------------

_COMPARE: dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}


def _coerce(value: str) -> Any:
    try:
        return int(value)
    except ValueError:
        return value


def evaluate_expression(expression: str, bindings: dict[str, str]) -> bool:
    """Evaluate a comparison/boolean expression over string bindings.

    Names resolve to bindings (numeric strings compare as integers); unknown
    names are empty strings. `&&`, `||` and `!` are accepted alongside
    `and`, `or` and `not`. Anything that fails to evaluate is False.
    """
    source = expression.replace("&&", " and ").replace("||", " or ").replace("!=", "<>")
    source = source.replace("!", " not ").replace("<>", "!=")
    try:
        tree = ast.parse(source.strip(), mode="eval")
        return bool(_eval(tree.body, bindings))
    except (SyntaxError, TypeError, ValueError, KeyError):
        return False


def _eval(node: ast.AST, bindings: dict[str, str]) -> Any:
    if isinstance(node, ast.BoolOp):
        values = (_eval(v, bindings) for v in node.values)
        return all(values) if isinstance(node.op, ast.And) else any(values)
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, ast.Not):
        return not _eval(node.operand, bindings)
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, ast.USub):
        return -_eval(node.operand, bindings)
    if isinstance(node, ast.Compare):
        left = _eval(node.left, bindings)
        for op, comparator in zip(node.ops, node.comparators):
            right = _eval(comparator, bindings)
            if not _COMPARE[type(op)](left, right):
                return False
            left = right
        return True
    if isinstance(node, ast.Name):
        if node.id in ("true", "false"):
            return node.id == "true"
        return _coerce(bindings.get(node.id, ""))
    if isinstance(node, ast.Constant) and isinstance(node.value, (str, int, float, bool)):
        return node.value
    raise ValueError(f"Unsupported expression element: {type(node).__name__}")
