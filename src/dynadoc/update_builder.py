from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from .dumping import ABSENT, DumpOptions, dump, dump_operand
from .errors import ValidationError
from .expressions import ExpressionBuilder
from .model import ModelSchema


class ItemUpdater:
    """Collects the SET/ADD/DELETE/REMOVE clauses of one ``UpdateItem`` request."""

    def __init__(self, schema: ModelSchema, options: DumpOptions) -> None:
        self._schema = schema
        self._options = options
        self._updates: list[tuple[str, str, Any]] = []

    def set(self, name: str, value: Any) -> ItemUpdater:
        self._updates.append(("SET", self._check(name), value))
        return self

    def set_if_not_exists(self, name: str, value: Any) -> ItemUpdater:
        self._updates.append(("SET_IF_NOT_EXISTS", self._check(name), value))
        return self

    def add(self, name: str, value: Any) -> ItemUpdater:
        attr = self._schema.attribute(self._check(name))
        if attr.type not in {"set", "integer", "number"}:
            raise ValidationError(f"ADD requires a numeric or set attribute: {name}")
        if attr.type != "set" and (isinstance(value, bool) or not isinstance(value, (int, float, Decimal))):
            raise ValidationError(f"ADD requires a numeric value: {name}")
        self._updates.append(("ADD", name, value))
        return self

    def delete(self, name: str, value: Any) -> ItemUpdater:
        attr = self._schema.attribute(self._check(name))
        if attr.type != "set":
            raise ValidationError(f"DELETE requires a set attribute: {name}")
        self._updates.append(("DELETE", name, value))
        return self

    def remove(self, *names: str) -> ItemUpdater:
        for name in names:
            self._updates.append(("REMOVE", self._check(name), None))
        return self

    def append_to_list(self, name: str, values: Iterable[Any]) -> ItemUpdater:
        attr = self._schema.attribute(self._check(name))
        if attr.type != "array":
            raise ValidationError(f"list operations require an array attribute: {name}")
        self._updates.append(("APPEND", name, list(values)))
        return self

    @property
    def attribute_names(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(name for _, name, _ in self._updates))

    def __bool__(self) -> bool:
        return bool(self._updates)

    def build(self, builder: ExpressionBuilder) -> str:
        set_parts: list[str] = []
        remove_parts: list[str] = []
        add_parts: list[str] = []
        delete_parts: list[str] = []

        for kind, name, value in self._updates:
            attr = self._schema.attribute(name)
            ref = builder.name("u", attr)

            if kind in {"SET", "SET_IF_NOT_EXISTS"}:
                primitive = dump(value, attr, self._options)
                if primitive is ABSENT:
                    remove_parts.append(ref)
                    continue
                value_ref = builder.value("u", primitive)
                if kind == "SET":
                    set_parts.append(f"{ref} = {value_ref}")
                else:
                    set_parts.append(f"{ref} = if_not_exists({ref}, {value_ref})")
                continue

            if kind == "REMOVE":
                remove_parts.append(ref)
                continue

            if kind == "ADD":
                operand = _as_set(value) if attr.type == "set" else value
                add_parts.append(f"{ref} {builder.value('u', dump_operand(operand, attr, self._options))}")
                continue

            if kind == "DELETE":
                delete_parts.append(f"{ref} {builder.value('u', dump_operand(_as_set(value), attr, self._options))}")
                continue

            if kind == "APPEND":
                value_ref = builder.value("u", dump_operand(value, attr, self._options))
                empty_ref = builder.value("u", [])
                set_parts.append(f"{ref} = list_append(if_not_exists({ref}, {empty_ref}), {value_ref})")
                continue

            raise ValidationError(f"unsupported update operation: {kind}")

        expr_parts: list[str] = []
        if set_parts:
            expr_parts.append("SET " + ", ".join(set_parts))
        if remove_parts:
            expr_parts.append("REMOVE " + ", ".join(remove_parts))
        if add_parts:
            expr_parts.append("ADD " + ", ".join(add_parts))
        if delete_parts:
            expr_parts.append("DELETE " + ", ".join(delete_parts))
        if not expr_parts:
            raise ValidationError("no updates provided")
        return " ".join(expr_parts)

    def _check(self, name: str) -> str:
        self._schema.attribute(name)
        if name in self._schema.key_attributes():
            raise ValidationError(f"cannot update key field: {name}")
        return name


def _as_set(value: Any) -> set[Any]:
    if isinstance(value, (set, frozenset)):
        return set(value)
    if isinstance(value, (list, tuple)):
        return set(value)
    return {value}
