from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from decimal import ROUND_FLOOR, ROUND_HALF_EVEN, Decimal
from typing import TYPE_CHECKING, Any, Protocol

import yaml
from boto3.dynamodb.types import Binary

from .errors import UnsupportedKeyType, ValidationError

if TYPE_CHECKING:
    from .model import AttributeDefinition


class _Absent:
    def __repr__(self) -> str:  # pragma: no cover
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT: Any = _Absent()

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_EPOCH_DATE = date(1970, 1, 1)
_MICROS = Decimal(1_000_000)


class Serializer(Protocol):
    def dumps(self, value: Any) -> str: ...

    def loads(self, value: str) -> Any: ...


@dataclass(frozen=True)
class CustomType:
    """A user-registered type: ``dump``/``load`` convert to and from a DynamoDB primitive.

    ``key_type`` is the scalar wire type (``S``, ``N`` or ``B``) used when the
    attribute is part of a table or index key; ``None`` means it cannot be one.
    """

    name: str
    dump: Callable[[Any], Any]
    load: Callable[[Any], Any]
    key_type: str | None = None


@dataclass(frozen=True)
class DumpOptions:
    store_empty_string_as_nil: bool = True
    store_empty_collection_as_nil: bool = True
    store_attribute_with_nil_value: bool = False
    store_datetime_as_string: bool = False
    store_date_as_string: bool = False
    store_boolean_as_native: bool = True
    application_timezone: tzinfo = timezone.utc
    dynamodb_timezone: tzinfo = timezone.utc


type DumpFn = Callable[[Any, AttributeDefinition, DumpOptions], Any]
type LoadFn = Callable[[Any, AttributeDefinition, DumpOptions], Any]


@dataclass(frozen=True)
class Codec:
    dump: DumpFn
    load: LoadFn


def dump(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    """Converts a python value into the primitive stored in DynamoDB.

    Returns ``ABSENT`` when the attribute should not be written at all, and
    ``None`` when it should be written as an explicit ``NULL``.
    """

    primitive = None if value is None else attr.codec.dump(value, attr, options)
    if primitive is None:
        return None if options.store_attribute_with_nil_value else ABSENT
    return primitive


def load(primitive: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    if primitive is None:
        return None
    return attr.codec.load(primitive, attr, options)


def dump_operand(value: Any, attr: AttributeDefinition, options: DumpOptions, *, element: bool = False) -> Any:
    """Dumps a comparison operand; empty values are kept since conditions cannot be absent."""

    if value is None:
        return None
    if element:
        if attr.of is None:
            return _sanitize(value)
        return CODECS[attr.of].dump(value, attr, options)
    kept = DumpOptions(
        store_empty_string_as_nil=False,
        store_empty_collection_as_nil=False,
        store_datetime_as_string=options.store_datetime_as_string,
        store_date_as_string=options.store_date_as_string,
        store_boolean_as_native=options.store_boolean_as_native,
        application_timezone=options.application_timezone,
        dynamodb_timezone=options.dynamodb_timezone,
    )
    return attr.codec.dump(value, attr, kept)


def key_type(attr: AttributeDefinition, options: DumpOptions) -> str:
    if attr.type in {"string", "serialized"}:
        return "S"
    if attr.type in {"integer", "number"}:
        return "N"
    if attr.type == "binary":
        return "B"
    if attr.type == "datetime":
        return "S" if _datetime_as_string(attr, options) else "N"
    if attr.type == "date":
        return "S" if _date_as_string(attr, options) else "N"
    if attr.type == "custom" and attr.custom is not None and attr.custom.key_type in {"S", "N", "B"}:
        return attr.custom.key_type
    raise UnsupportedKeyType(f"{attr.python_name}: type {attr.type!r} cannot be used as a key attribute")


def codec_for(type_tag: str) -> Codec:
    codec = CODECS.get(type_tag)
    if codec is None:
        raise ValidationError(f"unsupported attribute type: {type_tag}")
    return codec


def _datetime_as_string(attr: AttributeDefinition, options: DumpOptions) -> bool:
    if attr.store_as_string is not None:
        return attr.store_as_string
    return options.store_datetime_as_string


def _date_as_string(attr: AttributeDefinition, options: DumpOptions) -> bool:
    if attr.store_as_string is not None:
        return attr.store_as_string
    return options.store_date_as_string


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError("boolean is not a number")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    try:
        return Decimal(str(value))
    except ArithmeticError as err:
        raise ValidationError(f"not a number: {value!r}") from err


def _empty_set(value: Any) -> bool:
    return isinstance(value, (set, frozenset)) and not value


def _sanitize(value: Any) -> Any:
    # Nested empty sets are dropped from maps and stored as null inside lists.
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, Mapping):
        return {str(k): _sanitize(v) for k, v in value.items() if not _empty_set(v)}
    if isinstance(value, (set, frozenset)):
        return {_sanitize(v) for v in value}
    if isinstance(value, (list, tuple)):
        return [None if _empty_set(v) else _sanitize(v) for v in value]
    if isinstance(value, bytearray):
        return bytes(value)
    return value


def _desanitize(value: Any) -> Any:
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return value
    if isinstance(value, Mapping):
        return {k: _desanitize(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        return {_desanitize(v) for v in value}
    if isinstance(value, list):
        return [_desanitize(v) for v in value]
    if isinstance(value, Binary):
        return bytes(value.value)
    return value


def _dump_string(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    text = str(value)
    if text == "" and options.store_empty_string_as_nil:
        return None
    return text


def _load_string(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    return str(value)


def _dump_integer(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    if isinstance(value, bool):
        raise ValidationError(f"{attr.python_name}: boolean is not an integer")
    return int(value)


def _load_integer(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    return int(value)


def _dump_number(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    return _to_decimal(value)


def _load_number(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    if attr.python_type is float:
        return float(value)
    if attr.python_type is int:
        return int(value)
    return _to_decimal(value)


def _dump_boolean(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    native = options.store_boolean_as_native
    if attr.store_as_native_boolean is not None:
        native = attr.store_as_native_boolean
    flag = bool(value)
    if native:
        return flag
    return "t" if flag else "f"


def _load_boolean(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    if isinstance(value, str):
        return value in {"t", "true"}
    return bool(value)


def _aware(value: datetime, options: DumpOptions) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=options.application_timezone)
    return value


def _dump_datetime(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    if not isinstance(value, datetime):
        if isinstance(value, date):
            value = datetime(value.year, value.month, value.day)
        else:
            raise ValidationError(f"{attr.python_name}: expected a datetime, got {type(value).__name__}")
    moment = _aware(value, options)

    if _datetime_as_string(attr, options):
        return moment.astimezone(options.dynamodb_timezone).isoformat(timespec="microseconds")

    delta = moment - _EPOCH
    seconds = delta.days * 86400 + delta.seconds
    if not delta.microseconds:
        return Decimal(seconds)
    return Decimal(seconds) + Decimal(delta.microseconds) / _MICROS


def _load_datetime(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    if isinstance(value, str):
        moment = datetime.fromisoformat(value)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=options.dynamodb_timezone)
        return moment.astimezone(options.application_timezone)

    number = _to_decimal(value)
    seconds = int(number.to_integral_value(rounding=ROUND_FLOOR))
    micros = int(((number - seconds) * _MICROS).to_integral_value(rounding=ROUND_HALF_EVEN))
    moment = _EPOCH + timedelta(seconds=seconds, microseconds=micros)
    return moment.astimezone(options.application_timezone)


def _dump_date(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    if isinstance(value, datetime):
        value = value.date()
    if not isinstance(value, date):
        raise ValidationError(f"{attr.python_name}: expected a date, got {type(value).__name__}")
    if _date_as_string(attr, options):
        return value.isoformat()
    return (value - _EPOCH_DATE).days


def _load_date(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    if isinstance(value, str):
        return date.fromisoformat(value)
    return _EPOCH_DATE + timedelta(days=int(value))


def _dump_set(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    # DynamoDB cannot store an empty set.
    if not value:
        return None
    if attr.of is None:
        return {_sanitize(v) for v in value}
    element = CODECS[attr.of]
    return {element.dump(v, attr, options) for v in value}


def _load_set(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    if attr.of is None:
        return {_desanitize(v) for v in value}
    element = CODECS[attr.of]
    return {element.load(v, attr, options) for v in value}


def _dump_array(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    if not value and options.store_empty_collection_as_nil:
        return None
    if attr.of is None:
        return [_sanitize(v) for v in value]
    element = CODECS[attr.of]
    return [element.dump(v, attr, options) for v in value]


def _load_array(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    if attr.of is None:
        return [_desanitize(v) for v in value]
    element = CODECS[attr.of]
    return [element.load(v, attr, options) for v in value]


def _dump_map(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    if not isinstance(value, Mapping):
        raise ValidationError(f"{attr.python_name}: expected a mapping, got {type(value).__name__}")
    if not value and options.store_empty_collection_as_nil:
        return None
    return _sanitize(value)


def _dump_raw(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    if _empty_set(value):
        return None
    return _sanitize(value)


def _load_raw(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    return _desanitize(value)


def _dump_binary(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    return bytes(value)


def _load_binary(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    if isinstance(value, Binary):
        return bytes(value.value)
    return bytes(value)


def _dump_serialized(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    if attr.serializer is not None:
        return attr.serializer.dumps(value)
    return yaml.safe_dump(value, default_flow_style=True, sort_keys=True)


def _load_serialized(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    if attr.serializer is not None:
        return attr.serializer.loads(value)
    return yaml.safe_load(value)


def _dump_custom(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    if attr.custom is None:
        raise ValidationError(f"{attr.python_name}: custom type is not configured")
    return _sanitize(attr.custom.dump(value))


def _load_custom(value: Any, attr: AttributeDefinition, options: DumpOptions) -> Any:
    if attr.custom is None:
        raise ValidationError(f"{attr.python_name}: custom type is not configured")
    return attr.custom.load(_desanitize(value))


CODECS: Mapping[str, Codec] = {
    "string": Codec(_dump_string, _load_string),
    "integer": Codec(_dump_integer, _load_integer),
    "number": Codec(_dump_number, _load_number),
    "boolean": Codec(_dump_boolean, _load_boolean),
    "datetime": Codec(_dump_datetime, _load_datetime),
    "date": Codec(_dump_date, _load_date),
    "set": Codec(_dump_set, _load_set),
    "array": Codec(_dump_array, _load_array),
    "map": Codec(_dump_map, _load_raw),
    "raw": Codec(_dump_raw, _load_raw),
    "binary": Codec(_dump_binary, _load_binary),
    "serialized": Codec(_dump_serialized, _load_serialized),
    "custom": Codec(_dump_custom, _load_custom),
}

ELEMENT_TYPES = frozenset({"string", "integer", "number", "datetime", "date", "binary"})
