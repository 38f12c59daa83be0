from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from boto3.dynamodb.types import TypeSerializer

from .criteria import Condition
from .dumping import DumpOptions, dump_operand
from .errors import ValidationError
from .model import AttributeDefinition, ModelSchema

_COMPARATORS = {"eq": "=", "ne": "<>", "gt": ">", "lt": "<", "gte": ">=", "lte": "<="}


class ExpressionBuilder:
    """Collects ``#name``/``:value`` placeholders shared by the expressions of one request."""

    def __init__(self) -> None:
        self.names: dict[str, str] = {}
        self.values: dict[str, Any] = {}
        self._counters: dict[str, int] = {}
        self._serializer = TypeSerializer()

    def name(self, prefix: str, attr: AttributeDefinition) -> str:
        ref = f"#{prefix}_{attr.python_name}"
        existing = self.names.get(ref)
        if existing is not None and existing != attr.attribute_name:
            raise ValidationError(f"expression attribute name collision: {ref}")
        self.names[ref] = attr.attribute_name
        return ref

    def value(self, prefix: str, primitive: Any) -> str:
        counter = self._counters.get(prefix, 0) + 1
        self._counters[prefix] = counter
        ref = f":{prefix}{counter}"
        self.values[ref] = self._serializer.serialize(primitive)
        return ref

    def apply(self, request: dict[str, Any]) -> dict[str, Any]:
        if self.names:
            request["ExpressionAttributeNames"] = dict(self.names)
        if self.values:
            request["ExpressionAttributeValues"] = dict(self.values)
        return request


def render_condition(
    builder: ExpressionBuilder,
    prefix: str,
    attr: AttributeDefinition,
    condition: Condition,
    options: DumpOptions,
) -> str:
    name = builder.name(prefix, attr)
    op = condition.operator
    vals = condition.values

    def ref(value: Any, *, element: bool = False) -> str:
        return builder.value(prefix, dump_operand(value, attr, options, element=element))

    if op in _COMPARATORS:
        return f"{name} {_COMPARATORS[op]} {ref(vals[0])}"
    if op == "between":
        return f"{name} BETWEEN {ref(vals[0])} AND {ref(vals[1])}"
    if op == "begins_with":
        return f"begins_with({name}, {ref(vals[0])})"
    if op == "in":
        return f"{name} IN (" + ", ".join(ref(v) for v in vals) + ")"
    if op in {"contains", "not_contains"}:
        term = f"contains({name}, {ref(vals[0], element=attr.type in {'set', 'array'})})"
        return term if op == "contains" else f"NOT {term}"
    if op in {"null", "not_null"}:
        missing = bool(vals[0]) if op == "null" else not bool(vals[0])
        return f"attribute_not_exists({name})" if missing else f"attribute_exists({name})"

    raise ValidationError(f"unsupported condition operator: {op}")


def render_conditions(
    builder: ExpressionBuilder,
    prefix: str,
    schema: ModelSchema,
    conditions: Iterable[Condition],
    options: DumpOptions,
) -> str:
    return " AND ".join(
        render_condition(builder, prefix, schema.attribute(c.attribute), c, options) for c in conditions
    )


def attribute_exists(builder: ExpressionBuilder, prefix: str, attr: AttributeDefinition) -> str:
    return f"attribute_exists({builder.name(prefix, attr)})"


def attribute_not_exists(builder: ExpressionBuilder, prefix: str, attr: AttributeDefinition) -> str:
    return f"attribute_not_exists({builder.name(prefix, attr)})"
