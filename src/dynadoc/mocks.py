from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from boto3.dynamodb.types import TypeDeserializer
from botocore.exceptions import ClientError


class _AnySentinel:
    def __repr__(self) -> str:  # pragma: no cover
        return "ANY"


ANY: Any = _AnySentinel()

# Low-level DynamoDB client operations the fake answers.
OPERATIONS = frozenset(
    {
        "put_item",
        "get_item",
        "update_item",
        "delete_item",
        "query",
        "scan",
        "batch_get_item",
        "batch_write_item",
        "transact_write_items",
        "transact_get_items",
        "execute_statement",
        "create_table",
        "delete_table",
        "describe_table",
        "list_tables",
        "update_time_to_live",
    }
)


def _match_request(expected: Any, actual: Any, *, path: str) -> None:
    if expected is ANY:
        return

    if isinstance(expected, dict):
        if not isinstance(actual, dict):
            raise AssertionError(f"{path}: expected dict, got {type(actual).__name__}")
        for k, v in expected.items():
            if k not in actual:
                raise AssertionError(f"{path}: missing key {k!r}")
            _match_request(v, actual[k], path=f"{path}.{k}")
        return

    if isinstance(expected, list):
        if not isinstance(actual, list):
            raise AssertionError(f"{path}: expected list, got {type(actual).__name__}")
        if len(expected) != len(actual):
            raise AssertionError(f"{path}: expected {len(expected)} items, got {len(actual)}")
        for i, (e, a) in enumerate(zip(expected, actual, strict=True)):
            _match_request(e, a, path=f"{path}[{i}]")
        return

    if expected != actual:
        raise AssertionError(f"{path}: expected {expected!r}, got {actual!r}")


def _describe(method: str, req: Mapping[str, Any]) -> str:
    table = req.get("TableName")
    return f"{method}({table})" if table else method


_CLAUSE = re.compile(r"\b(SET|REMOVE|ADD|DELETE)\b")
_NAME_REF = re.compile(r"#\w+")
_VALUE_REF = re.compile(r":\w+")
_deserializer = TypeDeserializer()


def _split_actions(body: str) -> list[str]:
    actions: list[str] = []
    depth = 0
    current = ""
    for ch in body:
        if ch == "," and depth == 0:
            actions.append(current.strip())
            current = ""
            continue
        depth += {"(": 1, ")": -1}.get(ch, 0)
        current += ch
    if current.strip():
        actions.append(current.strip())
    return actions


def update_actions(req: Mapping[str, Any]) -> dict[str, dict[str, Any]]:
    """Decodes an ``UpdateItem`` request into ``{clause: {attribute name: value}}``.

    Placeholders are resolved through ``ExpressionAttributeNames``/``Values``;
    the value of an action is its last value placeholder (``None`` for REMOVE).
    """

    names = req.get("ExpressionAttributeNames", {})
    values = req.get("ExpressionAttributeValues", {})
    parts = _CLAUSE.split(req.get("UpdateExpression", ""))

    decoded: dict[str, dict[str, Any]] = {}
    for clause, body in zip(parts[1::2], parts[2::2], strict=True):
        entries = decoded.setdefault(clause, {})
        for action in _split_actions(body):
            name_ref = _NAME_REF.search(action)
            if name_ref is None:
                raise AssertionError(f"update action without an attribute: {action!r}")
            value_refs = _VALUE_REF.findall(action)
            value = _deserializer.deserialize(values[value_refs[-1]]) if value_refs else None
            entries[names.get(name_ref.group(), name_ref.group())] = value
    return decoded


def client_error(code: str, message: str = "", *, operation: str = "Operation", **extra: Any) -> ClientError:
    """A botocore ``ClientError`` as the DynamoDB client raises it; ``extra`` lands in the response."""

    return ClientError({"Error": {"Code": code, "Message": message}, **extra}, operation)


@dataclass(frozen=True)
class Expectation:
    method: str
    expected: Mapping[str, Any] | Callable[[Mapping[str, Any]], None] | None = None
    response: Mapping[str, Any] | None = None
    error: Exception | None = None


class FakeDynamoDBClient:
    """Answers DynamoDB calls from an ordered list of expectations."""

    def __init__(self) -> None:
        self._expected: list[Expectation] = []
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def expect(
        self,
        method: str,
        expected: Mapping[str, Any] | Callable[[Mapping[str, Any]], None] | None = None,
        *,
        response: Mapping[str, Any] | None = None,
        error: Exception | None = None,
    ) -> FakeDynamoDBClient:
        if method not in OPERATIONS:
            raise ValueError(f"unsupported operation: {method}")
        self._expected.append(Expectation(method=method, expected=expected, response=response, error=error))
        return self

    def assert_no_pending(self) -> None:
        if self._expected:
            raise AssertionError(f"pending expected calls: {self._expected!r}")

    def calls_to(self, method: str) -> list[dict[str, Any]]:
        return [req for name, req in self.calls if name == method]

    def __getattr__(self, name: str) -> Callable[..., Mapping[str, Any]]:
        if name not in OPERATIONS:
            raise AttributeError(name)

        def call(**kwargs: Any) -> Mapping[str, Any]:
            return self._handle(name, kwargs)

        return call

    def _handle(self, method: str, req: dict[str, Any]) -> Mapping[str, Any]:
        self.calls.append((method, dict(req)))
        if not self._expected:
            raise AssertionError(f"unexpected call: {method}")

        call = self._expected.pop(0)
        if call.method != method:
            raise AssertionError(f"expected {call.method}, got {method}")

        if callable(call.expected):
            call.expected(req)
        elif call.expected is not None:
            _match_request(dict(call.expected), req, path=_describe(method, req))

        if call.error is not None:
            raise call.error

        return dict(call.response or {})
