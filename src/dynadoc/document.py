from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, ClassVar, Self

from . import callbacks
from .callbacks import HookTable
from .errors import UnknownAttribute
from .model import IndexSpec, ModelSchema


class Document:
    """Base class for persisted models.

    Fields are declared with annotations (optionally ``dynadoc_field(...)``);
    table options are class keywords::

        class User(Document, table="users", indexes=[gsi("by_email", partition="email")]):
            id: str | None = dynadoc_field(roles=["pk"])
            email: str | None = None
    """

    __schema__: ClassVar[ModelSchema]
    __hooks__: ClassVar[HookTable] = HookTable()

    def __init_subclass__(
        cls,
        *,
        table: str | None = None,
        indexes: Sequence[IndexSpec] = (),
        timestamps: bool = True,
        read_capacity: int | None = None,
        write_capacity: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init_subclass__(**kwargs)
        cls.__schema__ = ModelSchema.build(
            cls,
            table=table,
            indexes=indexes,
            timestamps=timestamps,
            read_capacity=read_capacity,
            write_capacity=write_capacity,
            skip=lambda klass: klass is Document,
        )
        cls.__hooks__ = callbacks.collect_hooks(cls)

    def __init__(self, **attrs: Any) -> None:
        schema = type(self).__schema__
        object.__setattr__(self, "_new_record", True)
        object.__setattr__(self, "_destroyed", False)
        object.__setattr__(self, "_changes", {})
        object.__setattr__(self, "errors", [])
        for name, attr in schema.attributes.items():
            object.__setattr__(self, name, attr.default_value())
        self.assign_attributes(attrs)

    @classmethod
    def instantiate(cls, values: Mapping[str, Any]) -> Self:
        """Builds a persisted, clean document from already loaded values."""

        doc = cls.__new__(cls)
        object.__setattr__(doc, "_new_record", False)
        object.__setattr__(doc, "_destroyed", False)
        object.__setattr__(doc, "_changes", {})
        object.__setattr__(doc, "errors", [])
        for name in cls.__schema__.attributes:
            object.__setattr__(doc, name, values.get(name))
        return doc

    def __setattr__(self, name: str, value: Any) -> None:
        if name in type(self).__schema__.attributes:
            changes: dict[str, Any] = self._changes
            previous = self.__dict__.get(name)
            if name not in changes:
                if previous != value:
                    changes[name] = previous
            elif changes[name] == value:
                del changes[name]
        object.__setattr__(self, name, value)

    def assign_attributes(self, attrs: Mapping[str, Any]) -> None:
        schema = type(self).__schema__
        for name in attrs:
            if name not in schema.attributes:
                raise UnknownAttribute(schema.model_name, name)
        for name, value in attrs.items():
            setattr(self, name, value)

    @property
    def attributes(self) -> dict[str, Any]:
        return {name: self.__dict__.get(name) for name in type(self).__schema__.attributes}

    @property
    def hash_key(self) -> Any:
        return self.__dict__.get(type(self).__schema__.hash_key)

    @property
    def range_key(self) -> Any:
        range_key = type(self).__schema__.range_key
        if range_key is None:
            return None
        return self.__dict__.get(range_key)

    @property
    def new_record(self) -> bool:
        return bool(self._new_record)

    @property
    def persisted(self) -> bool:
        return not self._new_record and not self._destroyed

    @property
    def destroyed(self) -> bool:
        return bool(self._destroyed)

    @property
    def changed(self) -> bool:
        return bool(self._changes)

    @property
    def changed_attributes(self) -> dict[str, Any]:
        """Attribute name to the value it had before the pending changes."""

        return dict(self._changes)

    @property
    def changes(self) -> dict[str, tuple[Any, Any]]:
        return {name: (previous, self.__dict__.get(name)) for name, previous in self._changes.items()}

    def clear_changes(self, *names: str) -> None:
        if not names:
            self._changes.clear()
            return
        for name in names:
            self._changes.pop(name, None)

    def is_valid(self) -> bool:
        return callbacks.validate(self)

    def mark_persisted(self) -> None:
        object.__setattr__(self, "_new_record", False)
        object.__setattr__(self, "_destroyed", False)
        self._changes.clear()

    def mark_destroyed(self) -> None:
        object.__setattr__(self, "_destroyed", True)

    def load_values(self, values: Mapping[str, Any]) -> None:
        """Overwrites attributes with stored values without recording them as changes."""

        for name, value in values.items():
            if name in type(self).__schema__.attributes:
                object.__setattr__(self, name, value)
                self._changes.pop(name, None)

    def mark_written(self, written: Mapping[str, Any]) -> None:
        """Records ``written`` as the stored values.

        Attributes reassigned since those values were captured stay pending,
        with the written value as their previous one.
        """

        for name, value in written.items():
            if name not in type(self).__schema__.attributes:
                continue
            if self.__dict__.get(name) == value:
                self._changes.pop(name, None)
            else:
                self._changes[name] = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Document) or type(other) is not type(self):
            return NotImplemented
        if self.hash_key is None:
            return self is other
        return (self.hash_key, self.range_key) == (other.hash_key, other.range_key)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        schema = type(self).__schema__
        keys = ", ".join(f"{name}={self.__dict__.get(name)!r}" for name in schema.key_attributes())
        return f"{schema.model_name}({keys})"
