from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .errors import UnknownAttribute, ValidationError
from .model import ModelSchema

logger = logging.getLogger(__name__)

OPERATORS = frozenset(
    {
        "eq",
        "ne",
        "gt",
        "lt",
        "gte",
        "lte",
        "begins_with",
        "between",
        "in",
        "contains",
        "not_contains",
        "null",
        "not_null",
    }
)

# Operators DynamoDB accepts in a key condition on a sort key.
RANGE_OPERATORS = frozenset({"eq", "gt", "lt", "gte", "lte", "between", "begins_with"})


@dataclass(frozen=True)
class Condition:
    attribute: str
    operator: str
    values: tuple[Any, ...] = ()

    @property
    def value(self) -> Any:
        return self.values[0] if self.values else None


@dataclass(frozen=True)
class Criteria:
    conditions: tuple[Condition, ...] = ()

    def with_conditions(self, conditions: Iterable[Condition]) -> Criteria:
        merged = list(self.conditions)
        for condition in conditions:
            for i, existing in enumerate(merged):
                if (existing.attribute, existing.operator) == (condition.attribute, condition.operator):
                    merged[i] = condition
                    break
            else:
                merged.append(condition)
        return Criteria(conditions=tuple(merged))

    def for_attribute(self, attribute: str) -> tuple[Condition, ...]:
        return tuple(c for c in self.conditions if c.attribute == attribute)

    def has_eq(self, attribute: str) -> bool:
        return any(c.attribute == attribute and c.operator == "eq" for c in self.conditions)

    @property
    def attributes(self) -> frozenset[str]:
        return frozenset(c.attribute for c in self.conditions)

    def __iter__(self) -> Iterator[Condition]:
        return iter(self.conditions)

    def __len__(self) -> int:
        return len(self.conditions)


def parse_token(token: str, separator: str) -> tuple[str, str]:
    attribute, sep, operator = token.rpartition(separator)
    if sep and operator in OPERATORS and attribute:
        return attribute, operator
    if sep and attribute and separator == ".":
        raise ValidationError(f"unsupported operator: {operator}")
    return token, "eq"


def make_condition(attribute: str, operator: str, value: Any) -> Condition:
    if operator not in OPERATORS:
        raise ValidationError(f"unsupported operator: {operator}")

    if operator == "between":
        if not isinstance(value, Sequence) or isinstance(value, (str, bytes)) or len(value) != 2:
            raise ValidationError(f"{attribute}.between requires two values")
        return Condition(attribute, operator, (value[0], value[1]))

    if operator == "in":
        if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
            raise ValidationError(f"{attribute}.in requires a sequence of values")
        values = tuple(value)
        if not values:
            raise ValidationError(f"{attribute}.in requires at least one value")
        if len(values) > 100:
            raise ValidationError(f"{attribute}.in supports maximum 100 values")
        return Condition(attribute, operator, values)

    if operator in {"null", "not_null"}:
        return Condition(attribute, operator, (bool(value),))

    return Condition(attribute, operator, (value,))


def build_conditions(
    schema: ModelSchema,
    conditions: Mapping[str, Any] | None = None,
    keywords: Mapping[str, Any] | None = None,
    *,
    unknown_attribute_policy: str = "raise",
) -> list[Condition]:
    """Parses ``{"attr.op": value}`` and ``attr__op=value`` pairs into conditions."""

    parsed: list[tuple[str, str, Any]] = []
    for token, value in (conditions or {}).items():
        parsed.append((*parse_token(token, "."), value))
    for token, value in (keywords or {}).items():
        parsed.append((*parse_token(token, "__"), value))

    out: list[Condition] = []
    for attribute, operator, value in parsed:
        if attribute not in schema.attributes:
            if unknown_attribute_policy == "warn":
                logger.warning("%s: ignoring condition on unknown attribute %s", schema.model_name, attribute)
                continue
            raise UnknownAttribute(schema.model_name, attribute)
        out.append(make_condition(attribute, operator, value))
    return out
