from __future__ import annotations

from datetime import timezone
from zoneinfo import ZoneInfo

import pytest

from dynadoc import Config
from dynadoc.errors import ValidationError


def test_defaults() -> None:
    config = Config()

    assert config.table_name("users") == "dynadoc_users"
    assert Config(namespace=None).table_name("users") == "users"
    assert config.billing_mode == "PROVISIONED"
    assert (config.read_capacity, config.write_capacity) == (100, 20)
    assert config.build_backoff() is None
    assert config.batch_max_retries == 5

    options = config.dump_options()
    assert options.store_empty_string_as_nil
    assert not options.store_attribute_with_nil_value
    assert options.application_timezone is timezone.utc


def test_timezones_are_resolved() -> None:
    options = Config(application_timezone="Europe/Berlin", dynamodb_timezone="utc").dump_options()
    assert options.application_timezone == ZoneInfo("Europe/Berlin")
    assert options.dynamodb_timezone is timezone.utc


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"billing_mode": "ON_DEMAND"}, "unsupported billing_mode"),
        ({"unknown_attribute_policy": "ignore"}, "unsupported unknown_attribute_policy"),
        ({"batch_max_retries": -1}, "batch_max_retries must be >= 0"),
        ({"backoff": "linear"}, "unknown backoff strategy: linear"),
        ({"application_timezone": "Mars/Olympus"}, "unknown timezone: Mars/Olympus"),
    ],
)
def test_invalid_settings_are_rejected(kwargs: dict, message: str) -> None:
    with pytest.raises(ValidationError, match=message):
        Config(**kwargs)


def test_custom_backoff_strategies() -> None:
    calls: list[str] = []

    def noisy() -> object:
        return lambda: calls.append("slept")

    config = Config(backoff="noisy", backoff_strategies={"noisy": noisy})
    backoff = config.build_backoff()
    assert backoff is not None
    backoff()
    assert calls == ["slept"]
