from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from typing import Any

type Backoff = Callable[[], None]
type BackoffFactory = Callable[..., Backoff]


def constant(seconds: float = 1.0, *, sleep: Callable[[float], None] = time.sleep) -> Backoff:
    def backoff() -> None:
        sleep(seconds)

    return backoff


def exponential(
    base_backoff: float = 0.5,
    ceiling: int = 3,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> Backoff:
    """Doubles the delay on every call until ``ceiling`` doublings were reached."""

    if ceiling < 1:
        raise ValueError("ceiling must be >= 1")

    times = 1

    def backoff() -> None:
        nonlocal times
        power = min(times, ceiling) - 1
        sleep(base_backoff * (2**power))
        times += 1

    return backoff


DEFAULT_STRATEGIES: Mapping[str, BackoffFactory] = {
    "constant": constant,
    "exponential": exponential,
}


def build_backoff(
    strategies: Mapping[str, BackoffFactory],
    name: str,
    options: Mapping[str, Any] | None = None,
) -> Backoff:
    factory = strategies.get(name)
    if factory is None:
        raise KeyError(name)
    return factory(**dict(options or {}))
