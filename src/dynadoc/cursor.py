from __future__ import annotations

import base64
import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Cursor:
    last_key: dict[str, Any]
    index: str | None = None


def _b64(value: Any) -> str:
    return base64.b64encode(bytes(value)).decode("ascii")


def _unb64(value: Any) -> bytes:
    if not isinstance(value, str):
        raise ValueError("binary value must be a base64 string")
    return base64.b64decode(value)


def _same(value: Any) -> Any:
    return value


def _single(value: Any) -> tuple[str, Any]:
    if not isinstance(value, Mapping) or len(value) != 1:
        raise ValueError("attribute value must be a single-key map")
    (kind, inner), *_ = value.items()
    return str(kind), inner


# kind -> (encode, decode) for the JSON form of a low-level attribute value.
_CODERS: dict[str, tuple[Callable[[Any], Any], Callable[[Any], Any]]] = {
    "S": (_same, _same),
    "N": (_same, _same),
    "BOOL": (_same, _same),
    "NULL": (_same, _same),
    "SS": (list, list),
    "NS": (list, list),
    "B": (_b64, _unb64),
    "BS": (lambda v: [_b64(x) for x in v], lambda v: [_unb64(x) for x in v]),
}


def _convert(av: Any, *, encode: bool) -> dict[str, Any]:
    kind, value = _single(av)
    if kind == "L":
        if not isinstance(value, list):
            raise ValueError("L value must be a list")
        return {"L": [_convert(v, encode=encode) for v in value]}
    if kind == "M":
        if not isinstance(value, Mapping):
            raise ValueError("M value must be a map")
        return {"M": {str(k): _convert(value[k], encode=encode) for k in sorted(value)}}
    coder = _CODERS.get(kind)
    if coder is None:
        raise ValueError(f"unsupported attribute value type: {kind}")
    return {kind: coder[0 if encode else 1](value)}


def encode_cursor(last_key: Mapping[str, Any] | None, *, index: str | None = None) -> str | None:
    if not last_key:
        return None
    payload: dict[str, Any] = {"lastKey": {str(k): _convert(last_key[k], encode=True) for k in sorted(last_key)}}
    if index is not None:
        payload["index"] = index
    raw = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(cursor: str) -> Cursor:
    raw = str(cursor or "").strip()
    if not raw:
        raise ValueError("cursor is empty")

    padding = "=" * (-len(raw) % 4)
    parsed = json.loads(base64.urlsafe_b64decode(raw + padding).decode("utf-8"))
    if not isinstance(parsed, dict) or not isinstance(parsed.get("lastKey"), dict):
        raise ValueError("cursor lastKey is invalid")

    index = parsed.get("index")
    return Cursor(
        last_key={str(k): _convert(v, encode=False) for k, v in parsed["lastKey"].items()},
        index=index if isinstance(index, str) else None,
    )
