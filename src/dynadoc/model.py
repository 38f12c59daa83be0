from __future__ import annotations

import inspect
import threading
import types
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, ClassVar, Union, get_args, get_origin, get_type_hints

from .dumping import ELEMENT_TYPES, Codec, CustomType, Serializer, codec_for
from .errors import InvalidQuery, ModelDefinitionError, UnknownAttribute, ValidationError

_ROLES = frozenset({"pk", "sk", "version", "ttl"})

TIMESTAMP_ATTRIBUTES = ("created_at", "updated_at")

_UNSET: Any = object()


@dataclass(frozen=True)
class FieldSpec:
    name: str | None = None
    roles: tuple[str, ...] = ()
    type: str | CustomType | None = None
    of: str | None = None
    default: Any = _UNSET
    default_factory: Any = _UNSET
    store_as_string: bool | None = None
    store_as_native_boolean: bool | None = None
    serializer: Serializer | None = None


def dynadoc_field(
    *,
    name: str | None = None,
    roles: Sequence[str] | None = None,
    type: str | CustomType | None = None,  # noqa: A002
    of: str | None = None,
    default: Any = _UNSET,
    default_factory: Callable[[], Any] | Any = _UNSET,
    store_as_string: bool | None = None,
    store_as_native_boolean: bool | None = None,
    serializer: Serializer | None = None,
) -> Any:
    if default is not _UNSET and default_factory is not _UNSET:
        raise ValueError("dynadoc_field: cannot set both default and default_factory")

    unknown_roles = set(roles or ()) - _ROLES
    if unknown_roles:
        raise ModelDefinitionError(f"unknown field roles: {sorted(unknown_roles)}")

    return FieldSpec(
        name=name,
        roles=tuple(roles or ()),
        type=type,
        of=of,
        default=default,
        default_factory=default_factory,
        store_as_string=store_as_string,
        store_as_native_boolean=store_as_native_boolean,
        serializer=serializer,
    )


@dataclass(frozen=True)
class AttributeDefinition:
    python_name: str
    attribute_name: str
    type: str
    roles: tuple[str, ...] = ()
    of: str | None = None
    python_type: type | None = None
    default: Any = _UNSET
    default_factory: Any = _UNSET
    store_as_string: bool | None = None
    store_as_native_boolean: bool | None = None
    serializer: Serializer | None = None
    custom: CustomType | None = None
    codec: Codec = field(default=None, repr=False, compare=False)  # type: ignore[assignment]

    def __post_init__(self) -> None:
        if self.codec is None:
            object.__setattr__(self, "codec", codec_for(self.type))

    def default_value(self) -> Any:
        if self.default_factory is not _UNSET:
            return self.default_factory()
        if self.default is not _UNSET:
            return self.default
        return None


@dataclass(frozen=True)
class Projection:
    type: str
    fields: tuple[str, ...] = ()

    @staticmethod
    def all() -> Projection:
        return Projection(type="ALL")

    @staticmethod
    def keys_only() -> Projection:
        return Projection(type="KEYS_ONLY")

    @staticmethod
    def include(*fields: str) -> Projection:
        return Projection(type="INCLUDE", fields=tuple(fields))


@dataclass(frozen=True)
class IndexSpec:
    name: str
    type: str
    partition: str | None
    sort: str | None = None
    projection: Projection = field(default_factory=Projection.all)
    read_capacity: int | None = None
    write_capacity: int | None = None


@dataclass(frozen=True)
class IndexDefinition:
    name: str
    type: str
    hash_key: str
    range_key: str | None = None
    projection: Projection = field(default_factory=Projection.all)
    read_capacity: int | None = None
    write_capacity: int | None = None


def gsi(
    name: str,
    *,
    partition: str,
    sort: str | None = None,
    projection: Projection | None = None,
    read_capacity: int | None = None,
    write_capacity: int | None = None,
) -> IndexSpec:
    return IndexSpec(
        name=name,
        type="GSI",
        partition=partition,
        sort=sort,
        projection=projection or Projection.all(),
        read_capacity=read_capacity,
        write_capacity=write_capacity,
    )


def lsi(name: str, *, sort: str, projection: Projection | None = None) -> IndexSpec:
    return IndexSpec(name=name, type="LSI", partition=None, sort=sort, projection=projection or Projection.all())


@dataclass(frozen=True)
class ModelSchema:
    model_name: str
    table: str
    hash_key: str
    range_key: str | None
    attributes: Mapping[str, AttributeDefinition]
    indexes: tuple[IndexDefinition, ...] = ()
    lock_attribute: str | None = None
    ttl_attribute: str | None = None
    timestamps: bool = True
    read_capacity: int | None = None
    write_capacity: int | None = None

    def attribute(self, name: str) -> AttributeDefinition:
        attr = self.attributes.get(name)
        if attr is None:
            raise UnknownAttribute(self.model_name, name)
        return attr

    def index(self, name: str) -> IndexDefinition:
        for idx in self.indexes:
            if idx.name == name:
                return idx
        raise InvalidQuery(f"{self.model_name}: unknown index: {name}")

    def key_attributes(self) -> tuple[str, ...]:
        if self.range_key is None:
            return (self.hash_key,)
        return (self.hash_key, self.range_key)

    def projected_attributes(self, idx: IndexDefinition) -> frozenset[str] | None:
        """Attributes readable from ``idx``; ``None`` means every attribute."""

        if idx.projection.type == "ALL":
            return None
        names = {self.hash_key, idx.hash_key}
        if self.range_key is not None:
            names.add(self.range_key)
        if idx.range_key is not None:
            names.add(idx.range_key)
        if idx.projection.type == "INCLUDE":
            names.update(idx.projection.fields)
        return frozenset(names)

    @classmethod
    def build(
        cls,
        model_type: type,
        *,
        table: str | None = None,
        indexes: Sequence[IndexSpec] = (),
        timestamps: bool = True,
        read_capacity: int | None = None,
        write_capacity: int | None = None,
        skip: Callable[[type], bool] | None = None,
    ) -> ModelSchema:
        model_name = model_type.__name__
        try:
            hints = get_type_hints(model_type)
        except NameError as err:
            raise ModelDefinitionError(f"{model_name}: cannot resolve annotations: {err}") from err

        declared: list[str] = []
        for klass in reversed(model_type.__mro__):
            if klass is object or (skip is not None and skip(klass)):
                continue
            for name in inspect.get_annotations(klass):
                if name not in declared:
                    declared.append(name)

        attributes: dict[str, AttributeDefinition] = {}
        for python_name in declared:
            annotation = hints.get(python_name, Any)
            if python_name.startswith("_") or get_origin(annotation) is ClassVar:
                continue
            spec = _field_spec(model_type, python_name)
            attributes[python_name] = _attribute_definition(model_name, python_name, annotation, spec)

        if timestamps:
            for python_name in TIMESTAMP_ATTRIBUTES:
                if python_name not in attributes:
                    attributes[python_name] = AttributeDefinition(
                        python_name=python_name,
                        attribute_name=python_name,
                        type="datetime",
                        python_type=datetime,
                    )

        hash_key = _single_role(model_name, attributes, "pk", required=True)
        range_key = _single_role(model_name, attributes, "sk")
        lock_attribute = _single_role(model_name, attributes, "version")
        ttl_attribute = _single_role(model_name, attributes, "ttl")
        assert hash_key is not None

        if lock_attribute is not None and attributes[lock_attribute].type != "integer":
            raise ModelDefinitionError(f"{model_name}: version field must be an int: {lock_attribute}")

        seen_attribute_names: set[str] = set()
        for attr in attributes.values():
            if attr.attribute_name in seen_attribute_names:
                raise ModelDefinitionError(f"{model_name}: duplicate attribute name: {attr.attribute_name}")
            seen_attribute_names.add(attr.attribute_name)

        return cls(
            model_name=model_name,
            table=table or f"{model_name.lower()}s",
            hash_key=hash_key,
            range_key=range_key,
            attributes=types.MappingProxyType(attributes),
            indexes=_resolve_indexes(model_name, attributes, hash_key, indexes),
            lock_attribute=lock_attribute,
            ttl_attribute=ttl_attribute,
            timestamps=timestamps,
            read_capacity=read_capacity,
            write_capacity=write_capacity,
        )


def _field_spec(model_type: type, python_name: str) -> FieldSpec:
    for klass in model_type.__mro__:
        if python_name in vars(klass):
            value = vars(klass)[python_name]
            if isinstance(value, FieldSpec):
                return value
            return FieldSpec(default=value)
    return FieldSpec()


def _attribute_definition(
    model_name: str,
    python_name: str,
    annotation: Any,
    spec: FieldSpec,
) -> AttributeDefinition:
    custom: CustomType | None = None
    python_type: type | None = None
    of = spec.of

    if isinstance(spec.type, CustomType):
        type_tag = "custom"
        custom = spec.type
    elif spec.type is not None:
        type_tag = spec.type
        inferred = _infer_type(annotation)
        if inferred is not None:
            python_type = inferred[2]
            if of is None and inferred[0] == type_tag:
                of = inferred[1]
    else:
        inferred = _infer_type(annotation)
        if inferred is None:
            raise ModelDefinitionError(
                f"{model_name}.{python_name}: cannot infer a type from {annotation!r}; pass type="
            )
        type_tag, inferred_of, python_type = inferred
        of = of or inferred_of

    if of is not None and of not in ELEMENT_TYPES:
        raise ModelDefinitionError(f"{model_name}.{python_name}: unsupported element type: {of}")

    try:
        return AttributeDefinition(
            python_name=python_name,
            attribute_name=spec.name or python_name,
            type=type_tag,
            roles=spec.roles,
            of=of,
            python_type=python_type,
            default=spec.default,
            default_factory=spec.default_factory,
            store_as_string=spec.store_as_string,
            store_as_native_boolean=spec.store_as_native_boolean,
            serializer=spec.serializer,
            custom=custom,
        )
    except ValidationError as err:
        raise ModelDefinitionError(f"{model_name}.{python_name}: {err}") from err


def _unwrap_optional(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is not Union and origin is not types.UnionType:
        return annotation
    non_none = [a for a in get_args(annotation) if a is not type(None)]
    if len(non_none) == 1:
        return non_none[0]
    return annotation


def _infer_type(annotation: Any) -> tuple[str, str | None, type | None] | None:
    annotation = _unwrap_optional(annotation)
    origin = get_origin(annotation)

    if annotation is Any:
        return ("raw", None, None)
    if annotation is bool:
        return ("boolean", None, bool)
    if annotation is int:
        return ("integer", None, int)
    if annotation is float:
        return ("number", None, float)
    if annotation is Decimal:
        return ("number", None, Decimal)
    if annotation is str:
        return ("string", None, str)
    if annotation is datetime:
        return ("datetime", None, datetime)
    if annotation is date:
        return ("date", None, date)
    if annotation in (bytes, bytearray):
        return ("binary", None, bytes)

    if annotation in (set, frozenset) or origin in (set, frozenset):
        return ("set", _element_type(annotation), set)
    if annotation in (list, tuple) or origin in (list, tuple, Sequence):
        return ("array", _element_type(annotation), list)
    if annotation is dict or origin in (dict, Mapping):
        return ("map", None, dict)

    return None


def _element_type(annotation: Any) -> str | None:
    args = get_args(annotation)
    if not args:
        return None
    inferred = _infer_type(args[0])
    if inferred is None or inferred[0] not in ELEMENT_TYPES:
        return None
    return inferred[0]


def _single_role(
    model_name: str,
    attributes: Mapping[str, AttributeDefinition],
    role: str,
    *,
    required: bool = False,
) -> str | None:
    names = [name for name, attr in attributes.items() if role in attr.roles]
    if len(names) > 1:
        raise ModelDefinitionError(f"{model_name}: at most one {role} field is allowed (found {len(names)})")
    if not names:
        if required:
            raise ModelDefinitionError(f"{model_name}: model must define exactly one {role} field")
        return None
    return names[0]


def _resolve_indexes(
    model_name: str,
    attributes: Mapping[str, AttributeDefinition],
    hash_key: str,
    specs: Sequence[IndexSpec],
) -> tuple[IndexDefinition, ...]:
    resolved: list[IndexDefinition] = []
    seen: set[str] = set()

    for spec in specs:
        if spec.name in seen:
            raise ModelDefinitionError(f"{model_name}: duplicate index name: {spec.name}")
        seen.add(spec.name)

        if spec.type not in {"GSI", "LSI"}:
            raise ModelDefinitionError(f"{model_name}: unsupported index type: {spec.type}")

        partition = hash_key if spec.type == "LSI" else spec.partition
        if spec.type == "LSI" and spec.partition not in (None, hash_key):
            raise ModelDefinitionError(f"index {spec.name}: LSI partition must be the table pk ({hash_key})")
        if partition is None or partition not in attributes:
            raise ModelDefinitionError(f"index {spec.name}: unknown partition field: {partition}")
        if spec.sort is not None and spec.sort not in attributes:
            raise ModelDefinitionError(f"index {spec.name}: unknown sort field: {spec.sort}")
        if spec.type == "LSI" and spec.sort is None:
            raise ModelDefinitionError(f"index {spec.name}: LSI requires a sort field")
        for included in spec.projection.fields:
            if included not in attributes:
                raise ModelDefinitionError(f"index {spec.name}: unknown projected field: {included}")

        resolved.append(
            IndexDefinition(
                name=spec.name,
                type=spec.type,
                hash_key=partition,
                range_key=spec.sort,
                projection=spec.projection,
                read_capacity=spec.read_capacity,
                write_capacity=spec.write_capacity,
            )
        )

    return tuple(resolved)


class SchemaRegistry:
    """Every declared model, written during start-up and read-only once frozen."""

    def __init__(self) -> None:
        self._models: dict[str, type] = {}
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, model: type) -> None:
        with self._lock:
            if self._frozen:
                raise ModelDefinitionError(f"schema registry is frozen; cannot register {model.__name__}")
            existing = self._models.get(model.__name__)
            if existing is not None and existing is not model:
                raise ModelDefinitionError(f"duplicate model name: {model.__name__}")
            self._models[model.__name__] = model

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True

    def models(self) -> tuple[type, ...]:
        return tuple(self._models.values())

    def get(self, name: str) -> type:
        model = self._models.get(name)
        if model is None:
            raise KeyError(name)
        return model

    def __contains__(self, model: object) -> bool:
        return isinstance(model, type) and self._models.get(model.__name__) is model
