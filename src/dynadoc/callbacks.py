from __future__ import annotations

import functools
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

KINDS = ("validation", "save", "create", "update", "destroy", "touch")

_HOOK_MARKER = "__dynadoc_hooks__"
_VALIDATOR_MARKER = "__dynadoc_validator__"


class _Abort:
    def __repr__(self) -> str:  # pragma: no cover
        return "ABORT"


ABORT: Any = _Abort()

type Hook = Callable[[Any], Any]


def _mark(phase: str, kinds: tuple[str, ...]) -> Callable[[Hook], Hook]:
    unknown = [kind for kind in kinds if kind not in KINDS]
    if unknown or not kinds:
        raise ValueError(f"unknown hook kinds: {unknown or '(none)'}")

    def decorator(fn: Hook) -> Hook:
        marks = list(getattr(fn, _HOOK_MARKER, ()))
        marks.extend((phase, kind) for kind in kinds)
        setattr(fn, _HOOK_MARKER, tuple(marks))
        return fn

    return decorator


def before(*kinds: str) -> Callable[[Hook], Hook]:
    """Runs the decorated method before ``kinds``; returning ``ABORT`` vetoes the operation."""

    return _mark("before", kinds)


def after(*kinds: str) -> Callable[[Hook], Hook]:
    return _mark("after", kinds)


def validates(fn: Callable[[Any], str | None]) -> Callable[[Any], str | None]:
    """Marks a validator; it returns an error message, or ``None`` when the document is valid."""

    setattr(fn, _VALIDATOR_MARKER, True)
    return fn


@dataclass(frozen=True)
class HookTable:
    before: Mapping[str, tuple[Hook, ...]] = field(default_factory=dict)
    after: Mapping[str, tuple[Hook, ...]] = field(default_factory=dict)
    validators: tuple[Callable[[Any], str | None], ...] = ()


def collect_hooks(model_type: type) -> HookTable:
    # Subclass definitions replace same-named base definitions; order follows declaration.
    members: dict[str, Any] = {}
    for klass in reversed(model_type.__mro__):
        for name, value in vars(klass).items():
            if callable(value) and (hasattr(value, _HOOK_MARKER) or hasattr(value, _VALIDATOR_MARKER)):
                members.pop(name, None)
                members[name] = value

    before_hooks: dict[str, list[Hook]] = {kind: [] for kind in KINDS}
    after_hooks: dict[str, list[Hook]] = {kind: [] for kind in KINDS}
    validators: list[Callable[[Any], str | None]] = []

    for value in members.values():
        for phase, kind in getattr(value, _HOOK_MARKER, ()):
            (before_hooks if phase == "before" else after_hooks)[kind].append(value)
        if getattr(value, _VALIDATOR_MARKER, False):
            validators.append(value)

    return HookTable(
        before={kind: tuple(hooks) for kind, hooks in before_hooks.items()},
        after={kind: tuple(hooks) for kind, hooks in after_hooks.items()},
        validators=tuple(validators),
    )


def run[R](doc: Any, kind: str, body: Callable[[], R], *, skip: bool = False) -> R | Any:
    """Runs ``body`` wrapped in the hooks of ``kind``.

    Returns ``ABORT`` when a before hook, or ``body`` itself, vetoed; after
    hooks only run once ``body`` completed.
    """

    if skip:
        return body()

    table: HookTable = type(doc).__hooks__
    for hook in table.before.get(kind, ()):
        if hook(doc) is ABORT:
            logger.debug("%s: %s vetoed by %s", type(doc).__name__, kind, getattr(hook, "__name__", hook))
            return ABORT

    result = body()
    if result is ABORT:
        return ABORT

    for hook in table.after.get(kind, ()):
        hook(doc)
    return result


def validate(doc: Any, *, skip_callbacks: bool = False) -> bool:
    doc.errors.clear()

    def check() -> bool:
        table: HookTable = type(doc).__hooks__
        for validator in table.validators:
            message = validator(doc)
            if message:
                doc.errors.append(str(message))
        return not doc.errors

    result = run(doc, "validation", check, skip=skip_callbacks)
    return result is not ABORT and bool(result)


class _Invalid:
    def __repr__(self) -> str:  # pragma: no cover
        return "INVALID"


INVALID: Any = _Invalid()


def run_lifecycle(
    doc: Any,
    kinds: tuple[str, ...],
    body: Callable[[], Any],
    *,
    validation: bool = True,
    skip_callbacks: bool = False,
) -> Any:
    """Runs ``body`` inside the nested hooks of ``kinds`` (outermost first); validation runs innermost.

    Returns ``INVALID`` when validation failed, ``ABORT`` when a hook vetoed,
    and the result of ``body`` otherwise.
    """

    invalid = False

    def innermost() -> Any:
        nonlocal invalid
        if validation and not validate(doc, skip_callbacks=skip_callbacks):
            invalid = True
            return ABORT
        return body()

    step: Callable[[], Any] = innermost
    for kind in reversed(kinds):
        step = functools.partial(run, doc, kind, step, skip=skip_callbacks)

    result = step()
    return INVALID if invalid else result
