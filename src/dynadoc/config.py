from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .backoff import DEFAULT_STRATEGIES, Backoff, BackoffFactory, build_backoff
from .dumping import DumpOptions
from .errors import ValidationError

_BILLING_MODES = frozenset({"PROVISIONED", "PAY_PER_REQUEST"})
_UNKNOWN_ATTRIBUTE_POLICIES = frozenset({"raise", "warn"})


def _zone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError as err:
        raise ValidationError(f"unknown timezone: {name}") from err


@dataclass(frozen=True)
class Config:
    namespace: str | None = "dynadoc"

    region: str | None = None
    endpoint_url: str | None = None
    access_key: str | None = None
    secret_key: str | None = None
    connect_timeout: float = 1.0
    read_timeout: float = 3.0
    max_attempts: int = 3

    billing_mode: str = "PROVISIONED"
    read_capacity: int = 100
    write_capacity: int = 20

    consistent_read: bool = False
    store_empty_string_as_nil: bool = True
    store_empty_collection_as_nil: bool = True
    store_attribute_with_nil_value: bool = False
    store_datetime_as_string: bool = False
    store_date_as_string: bool = False
    store_boolean_as_native: bool = True
    application_timezone: str = "UTC"
    dynamodb_timezone: str = "UTC"

    timestamps: bool = True
    warn_on_scan: bool = True
    unknown_attribute_policy: str = "raise"

    create_table_on_save: bool = True
    table_wait_timeout: float = 300.0
    table_poll_interval: float = 0.25

    backoff: str | None = None
    backoff_options: Mapping[str, Any] = field(default_factory=dict)
    backoff_strategies: Mapping[str, BackoffFactory] = field(default_factory=lambda: dict(DEFAULT_STRATEGIES))
    batch_max_retries: int = 5

    def __post_init__(self) -> None:
        if self.billing_mode not in _BILLING_MODES:
            raise ValidationError(f"unsupported billing_mode: {self.billing_mode}")
        if self.unknown_attribute_policy not in _UNKNOWN_ATTRIBUTE_POLICIES:
            raise ValidationError(f"unsupported unknown_attribute_policy: {self.unknown_attribute_policy}")
        if self.batch_max_retries < 0:
            raise ValidationError("batch_max_retries must be >= 0")
        if self.backoff is not None and self.backoff not in self.backoff_strategies:
            raise ValidationError(f"unknown backoff strategy: {self.backoff}")
        _zone(self.application_timezone)
        _zone(self.dynamodb_timezone)

    def table_name(self, base: str) -> str:
        if self.namespace:
            return f"{self.namespace}_{base}"
        return base

    def dump_options(self) -> DumpOptions:
        return DumpOptions(
            store_empty_string_as_nil=self.store_empty_string_as_nil,
            store_empty_collection_as_nil=self.store_empty_collection_as_nil,
            store_attribute_with_nil_value=self.store_attribute_with_nil_value,
            store_datetime_as_string=self.store_datetime_as_string,
            store_date_as_string=self.store_date_as_string,
            store_boolean_as_native=self.store_boolean_as_native,
            application_timezone=_zone(self.application_timezone),
            dynamodb_timezone=_zone(self.dynamodb_timezone),
        )

    def build_backoff(self) -> Backoff | None:
        if self.backoff is None:
            return None
        return build_backoff(self.backoff_strategies, self.backoff, self.backoff_options)
