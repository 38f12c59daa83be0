from __future__ import annotations

from collections.abc import Callable
from typing import Any

from boto3.dynamodb.types import TypeSerializer

from .mocks import ANY, FakeDynamoDBClient, client_error, update_actions

_serializer = TypeSerializer()


def no_sleep(_: float) -> None:
    return None


def recording_sleep() -> tuple[list[float], Callable[[float], None]]:
    """A sleep function that records the requested delays instead of sleeping."""

    delays: list[float] = []

    def sleep(seconds: float) -> None:
        delays.append(seconds)

    return delays, sleep


def av(value: Any) -> dict[str, Any]:
    """Serializes a python value into a low-level DynamoDB attribute value."""

    return _serializer.serialize(value)


def item(**values: Any) -> dict[str, Any]:
    return {name: av(value) for name, value in values.items()}


__all__ = [
    "ANY",
    "FakeDynamoDBClient",
    "av",
    "client_error",
    "item",
    "no_sleep",
    "recording_sleep",
    "update_actions",
]
