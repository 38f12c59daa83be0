from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError

from . import callbacks
from . import schema as table_admin
from .aws_errors import error_code, map_client_error
from .backoff import Backoff
from .callbacks import ABORT, INVALID
from .config import Config
from .criteria import Condition
from .dumping import ABSENT, DumpOptions, dump, dump_operand, load
from .document import Document
from .errors import (
    BatchRetryExceededError,
    ConditionFailedError,
    DocumentDestroyedError,
    DocumentNotValid,
    MissingHashKey,
    MissingRangeKey,
    NotFoundError,
    RecordNotDestroyed,
    RecordNotSaved,
    RecordNotUnique,
    StaleObjectError,
    ValidationError,
)
from .expressions import ExpressionBuilder, attribute_exists, attribute_not_exists, render_condition
from .model import AttributeDefinition, ModelSchema
from .update_builder import ItemUpdater

if TYPE_CHECKING:
    from .chain import Chain

logger = logging.getLogger(__name__)

_BATCH_GET_SIZE = 100
_BATCH_WRITE_SIZE = 25


def _chunked[T](items: Sequence[T], size: int) -> Sequence[Sequence[T]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def _blank(value: Any) -> bool:
    return value is None or value == ""


def _statement_parameter(value: Any) -> Any:
    if isinstance(value, float):
        return Decimal(str(value))
    return value


class Collection[T: Document]:
    """Reads and writes the documents of one model class against its table."""

    def __init__(
        self,
        model: type[T],
        *,
        client: Any,
        config: Config | None = None,
        table_name: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._model = model
        self._schema: ModelSchema = model.__schema__
        self._client = client
        self._config = config or Config()
        self._table_name = table_name or self._config.table_name(self._schema.table)
        self._options = self._config.dump_options()
        self._sleep = sleep
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()
        self._by_attribute_name = {attr.attribute_name: attr for attr in self._schema.attributes.values()}

    @property
    def model(self) -> type[T]:
        return self._model

    @property
    def schema(self) -> ModelSchema:
        return self._schema

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def client(self) -> Any:
        return self._client

    @property
    def config(self) -> Config:
        return self._config

    @property
    def dump_options(self) -> DumpOptions:
        return self._options

    @property
    def timestamps(self) -> bool:
        return self._schema.timestamps and self._config.timestamps

    # -- queries -----------------------------------------------------------------

    def where(self, conditions: Mapping[str, Any] | None = None, /, **keywords: Any) -> Chain[T]:
        return self.all().where(conditions, **keywords)

    def all(self) -> Chain[T]:
        from .chain import Chain

        return Chain(self)

    def count(self) -> int:
        return self.all().count()

    def first(self) -> T | None:
        return self.all().first()

    def find(self, hash_key: Any, range_key: Any = None, *, consistent_read: bool | None = None) -> T:
        req = {
            "TableName": self._table_name,
            "Key": self.key(hash_key, range_key),
            "ConsistentRead": self._consistent(consistent_read),
        }
        logger.debug("GetItem %s", self._table_name)
        try:
            resp = self._client.get_item(**req)
        except ClientError as err:
            raise map_client_error(err) from err

        item = resp.get("Item")
        if not item:
            raise NotFoundError(f"{self._schema.model_name} not found: {hash_key!r}, {range_key!r}")
        return self.load_item(item)

    def find_many(self, keys: Iterable[Any], *, consistent_read: bool | None = None) -> list[T]:
        """Loads the documents for ``keys`` with ``BatchGetItem``; missing items are skipped."""

        normalized = [self.split_key(key) for key in keys]
        if not normalized:
            return []

        out: list[T] = []
        backoff: Backoff | None = None
        for chunk in _chunked(normalized, _BATCH_GET_SIZE):
            pending = [self.key(hash_key, range_key) for hash_key, range_key in chunk]
            attempts = 0
            while pending:
                req = {
                    self._table_name: {"Keys": pending, "ConsistentRead": self._consistent(consistent_read)},
                }
                logger.debug("BatchGetItem %s keys=%d", self._table_name, len(pending))
                try:
                    resp = self._client.batch_get_item(RequestItems=req)
                except ClientError as err:
                    raise map_client_error(err) from err

                out.extend(self.load_item(item) for item in resp.get("Responses", {}).get(self._table_name, []))

                pending = list(resp.get("UnprocessedKeys", {}).get(self._table_name, {}).get("Keys") or [])
                if pending:
                    if attempts >= self._config.batch_max_retries:
                        raise BatchRetryExceededError(operation="batch_get", unprocessed_count=len(pending))
                    attempts += 1
                    backoff = backoff or self._config.build_backoff()
                    if backoff is not None:
                        backoff()
        return out

    def find_by_pql(
        self,
        statement: str,
        parameters: Sequence[Any] = (),
        *,
        consistent_read: bool | None = None,
    ) -> list[T]:
        """Runs a PartiQL ``SELECT`` against the table and loads every returned item.

        ``parameters`` fill the statement's ``?`` placeholders in order; pages are
        followed through ``NextToken``.
        """

        req: dict[str, Any] = {"Statement": statement, "ConsistentRead": self._consistent(consistent_read)}
        if parameters:
            req["Parameters"] = [self._serializer.serialize(_statement_parameter(p)) for p in parameters]

        out: list[T] = []
        while True:
            logger.debug("ExecuteStatement %s", self._table_name)
            try:
                resp = self._client.execute_statement(**req)
            except ClientError as err:
                raise map_client_error(err) from err
            out.extend(self.load_item(item) for item in resp.get("Items", []))
            token = resp.get("NextToken")
            if not token:
                return out
            req["NextToken"] = token

    # -- creation ----------------------------------------------------------------

    def create(self, **attrs: Any) -> T:
        """Creates and persists a document; on validation failure or veto it is returned unsaved."""

        doc = self._model(**attrs)
        self._insert(doc, strict=False)
        return doc

    def create_strict(self, **attrs: Any) -> T:
        doc = self._model(**attrs)
        self._insert(doc, strict=True)
        return doc

    def import_(self, rows: Iterable[Mapping[str, Any] | T]) -> list[T]:
        """Writes ``rows`` with ``BatchWriteItem``, bypassing validation and hooks."""

        now = self.now()
        docs: list[T] = []
        requests: list[dict[str, Any]] = []
        for row in rows:
            doc = row if isinstance(row, Document) else self._model(**row)
            doc.assign_attributes(self.new_record_values(doc, now))
            item = self.to_item(doc)
            self._require_key_in(item)
            requests.append({"PutRequest": {"Item": item}})
            docs.append(doc)

        self._batch_write(requests, operation="import")
        for doc in docs:
            doc.mark_persisted()
        return docs

    # -- saving ------------------------------------------------------------------

    def save(self, doc: T, *, validate: bool = True, touch: bool = True) -> bool:
        return self._save(doc, strict=False, validate=validate, touch=touch)

    def save_strict(self, doc: T, *, validate: bool = True, touch: bool = True) -> T:
        self._save(doc, strict=True, validate=validate, touch=touch)
        return doc

    def update_attributes(self, doc: T, attrs: Mapping[str, Any]) -> bool:
        doc.assign_attributes(attrs)
        return self.save(doc)

    def update_attributes_strict(self, doc: T, attrs: Mapping[str, Any]) -> T:
        doc.assign_attributes(attrs)
        return self.save_strict(doc)

    def update(
        self,
        doc: T,
        fn: Callable[[ItemUpdater], Any],
        *,
        if_equal: Mapping[str, Any] | None = None,
    ) -> bool:
        try:
            return self._update(doc, fn, if_equal=if_equal)
        except StaleObjectError:
            return False

    def update_strict(
        self,
        doc: T,
        fn: Callable[[ItemUpdater], Any],
        *,
        if_equal: Mapping[str, Any] | None = None,
    ) -> T:
        self._update(doc, fn, if_equal=if_equal)
        return doc

    def update_fields(
        self,
        hash_key: Any,
        range_key: Any = None,
        attrs: Mapping[str, Any] | None = None,
        *,
        if_equal: Mapping[str, Any] | None = None,
    ) -> T | None:
        """Partially updates an existing item; returns None when it is missing or a condition failed."""

        req = self.update_fields_request(hash_key, range_key, attrs or {}, if_equal=if_equal, upsert=False)
        req["ReturnValues"] = "ALL_NEW"
        try:
            resp = self._call_write("update_item", req)
        except ConditionFailedError:
            return None
        return self.load_item(resp.get("Attributes") or {})

    def upsert(
        self,
        hash_key: Any,
        range_key: Any = None,
        attrs: Mapping[str, Any] | None = None,
        *,
        if_equal: Mapping[str, Any] | None = None,
    ) -> T | None:
        req = self.update_fields_request(hash_key, range_key, attrs or {}, if_equal=if_equal, upsert=True)
        req["ReturnValues"] = "ALL_NEW"
        try:
            resp = self._call_write("update_item", req)
        except ConditionFailedError:
            return None
        return self.load_item(resp.get("Attributes") or {})

    def touch(self, doc: T, *names: str) -> T:
        self._ensure_live(doc)
        if doc.new_record:
            raise ValidationError(f"{self._schema.model_name}: cannot touch a new record")

        now = self.now()
        fields = list(names)
        if self.timestamps:
            fields.append("updated_at")
        if not fields:
            return doc

        def body() -> None:
            updater = ItemUpdater(self._schema, self._options)
            for name in fields:
                updater.set(name, now)
            builder = ExpressionBuilder()
            req = {
                "TableName": self._table_name,
                "Key": self.key_of(doc),
                "UpdateExpression": updater.build(builder),
            }
            self._call_write("update_item", builder.apply(req))
            doc.load_values({name: now for name in fields})

        callbacks.run_lifecycle(doc, ("touch",), body, validation=False)
        return doc

    # -- counters ----------------------------------------------------------------

    def increment(self, doc: T, name: str, by: int | float = 1, *, touch: bool = False) -> T:
        """Adds ``by`` to ``name`` locally and, for persisted documents, with one ``ADD`` update."""

        self._ensure_live(doc)
        attr = self._schema.attribute(name)
        if attr.type not in {"integer", "number"}:
            raise ValidationError(f"{self._schema.model_name}: cannot increment non-numeric attribute {name}")

        if doc.new_record:
            setattr(doc, name, (getattr(doc, name) or 0) + by)
            return doc

        def body() -> None:
            updater = ItemUpdater(self._schema, self._options).add(name, by)
            lock = self._schema.lock_attribute
            if lock is not None:
                updater.add(lock, 1)
            if touch and self.timestamps:
                updater.set("updated_at", self.now())
            builder = ExpressionBuilder()
            req = {
                "TableName": self._table_name,
                "Key": self.key_of(doc),
                "UpdateExpression": updater.build(builder),
                "ReturnValues": "ALL_NEW",
            }
            resp = self._call_write("update_item", builder.apply(req))
            self._refresh(doc, resp, updater.attribute_names)

        callbacks.run_lifecycle(doc, ("touch",) if touch else (), body, validation=False)
        return doc

    def decrement(self, doc: T, name: str, by: int | float = 1, *, touch: bool = False) -> T:
        return self.increment(doc, name, -by, touch=touch)

    def inc(
        self,
        hash_key: Any,
        range_key: Any = None,
        *,
        touch: bool | Sequence[str] | None = None,
        **counters: int | float,
    ) -> None:
        """Atomically adds ``counters`` to an item without loading it; missing attributes count as zero."""

        key = self.key(hash_key, range_key)
        updater = ItemUpdater(self._schema, self._options)
        for name, by in counters.items():
            updater.add(name, by)

        if touch:
            now = self.now()
            names = [] if touch is True else list(touch)
            if self.timestamps:
                names.append("updated_at")
            for name in names:
                updater.set(name, now)

        if not updater:
            return
        builder = ExpressionBuilder()
        req = {"TableName": self._table_name, "Key": key, "UpdateExpression": updater.build(builder)}
        self._call_write("update_item", builder.apply(req))

    # -- deletion ----------------------------------------------------------------

    def delete(self, doc: T) -> T:
        req = self.delete_request(doc)
        try:
            self._call_write("delete_item", req)
        except ConditionFailedError as err:
            raise StaleObjectError(doc, "delete") from err
        doc.mark_destroyed()
        return doc

    def delete_key(self, hash_key: Any, range_key: Any = None) -> None:
        req = {"TableName": self._table_name, "Key": self.key(hash_key, range_key)}
        self._call_write("delete_item", req)

    def delete_keys(self, keys: Iterable[Any]) -> int:
        requests = [
            {"DeleteRequest": {"Key": self.key(hash_key, range_key)}}
            for hash_key, range_key in (self.split_key(key) for key in keys)
        ]
        self._batch_write(requests, operation="batch_delete")
        return len(requests)

    def destroy(self, doc: T) -> bool:
        return self._destroy(doc, strict=False)

    def destroy_strict(self, doc: T) -> T:
        self._destroy(doc, strict=True)
        return doc

    # -- table administration ----------------------------------------------------

    def create_table(self, *, wait: bool = True) -> bool:
        return table_admin.create_table(
            self._schema,
            client=self._client,
            table_name=self._table_name,
            config=self._config,
            wait_for_active=wait,
            sleep=self._sleep,
        )

    def delete_table(self, *, wait: bool = True, ignore_missing: bool = False) -> None:
        table_admin.delete_table(
            client=self._client,
            table_name=self._table_name,
            config=self._config,
            wait_for_delete=wait,
            ignore_missing=ignore_missing,
            sleep=self._sleep,
        )

    # -- request building (shared with TransactionWrite) -------------------------

    def now(self) -> datetime:
        return datetime.now(self._options.application_timezone)

    def new_record_values(self, doc: T, now: datetime) -> dict[str, Any]:
        """Values a new document receives when it is first written: generated key, lock, timestamps."""

        values: dict[str, Any] = {}
        hash_attr = self._schema.attribute(self._schema.hash_key)
        if _blank(doc.hash_key) and hash_attr.type == "string":
            values[hash_attr.python_name] = str(uuid.uuid4())
        lock = self._schema.lock_attribute
        if lock is not None:
            values[lock] = 1
        if self.timestamps:
            if getattr(doc, "created_at") is None:
                values["created_at"] = now
            if getattr(doc, "updated_at") is None:
                values["updated_at"] = now
        return values

    def put_request(self, doc: T, *, overrides: Mapping[str, Any] | None = None) -> dict[str, Any]:
        item = self.to_item(doc, overrides=overrides)
        hash_attr = self._schema.attribute(self._schema.hash_key)
        self._require_key_in(item)
        builder = ExpressionBuilder()
        req = {
            "TableName": self._table_name,
            "Item": item,
            "ConditionExpression": attribute_not_exists(builder, "c", hash_attr),
        }
        return builder.apply(req)

    def save_request(self, doc: T, *, touch: bool = True) -> tuple[dict[str, Any], dict[str, Any]]:
        """Builds the conditional ``UpdateItem`` for a persisted document's pending changes.

        Returns the request and the attribute values the document holds once it succeeded.
        """

        updates = {name: getattr(doc, name) for name in doc.changed_attributes}
        if touch and self.timestamps and "updated_at" not in updates:
            updates["updated_at"] = self.now()

        lock = self._schema.lock_attribute
        expected_lock = None
        if lock is not None:
            expected_lock = doc.changed_attributes.get(lock, getattr(doc, lock))
            updates[lock] = (expected_lock or 0) + 1

        updater = ItemUpdater(self._schema, self._options)
        for name, value in updates.items():
            updater.set(name, value)

        builder = ExpressionBuilder()
        req = {
            "TableName": self._table_name,
            "Key": self.key_of(doc),
            "UpdateExpression": updater.build(builder),
        }
        parts = [attribute_exists(builder, "c", self._schema.attribute(self._schema.hash_key))]
        if lock is not None:
            parts.append(self._lock_condition(builder, expected_lock))
        req["ConditionExpression"] = " AND ".join(parts)
        return builder.apply(req), updates

    def delete_request(self, doc: T) -> dict[str, Any]:
        req: dict[str, Any] = {"TableName": self._table_name, "Key": self.key_of(doc)}
        lock = self._schema.lock_attribute
        if lock is None:
            return req

        builder = ExpressionBuilder()
        missing = attribute_not_exists(builder, "c", self._schema.attribute(self._schema.hash_key))
        expected = doc.changed_attributes.get(lock, getattr(doc, lock))
        req["ConditionExpression"] = f"{missing} OR {self._lock_condition(builder, expected)}"
        return builder.apply(req)

    def update_fields_request(
        self,
        hash_key: Any,
        range_key: Any,
        attrs: Mapping[str, Any],
        *,
        if_equal: Mapping[str, Any] | None = None,
        upsert: bool = False,
    ) -> dict[str, Any]:
        key = self.key(hash_key, range_key)
        updater = ItemUpdater(self._schema, self._options)
        for name, value in attrs.items():
            updater.set(name, value)
        if self.timestamps:
            now = self.now()
            if "updated_at" not in attrs:
                updater.set("updated_at", now)
            if upsert:
                updater.set_if_not_exists("created_at", now)

        builder = ExpressionBuilder()
        req: dict[str, Any] = {"TableName": self._table_name, "Key": key, "UpdateExpression": updater.build(builder)}
        parts = [] if upsert else [attribute_exists(builder, "c", self._schema.attribute(self._schema.hash_key))]
        parts.extend(self._equality_conditions(builder, if_equal))
        if parts:
            req["ConditionExpression"] = " AND ".join(parts)
        return builder.apply(req)

    # -- item conversion ---------------------------------------------------------

    def key(self, hash_key: Any, range_key: Any = None) -> dict[str, Any]:
        """The low-level primary key; raises before any request when a key part is missing."""

        schema = self._schema
        if _blank(hash_key):
            raise MissingHashKey(f"{schema.model_name}: missing partition key {schema.hash_key}")
        out = {self._attribute_name(schema.hash_key): self._serialize_key(schema.hash_key, hash_key)}
        if schema.range_key is not None:
            if _blank(range_key):
                raise MissingRangeKey(f"{schema.model_name}: missing sort key {schema.range_key}")
            out[self._attribute_name(schema.range_key)] = self._serialize_key(schema.range_key, range_key)
        return out

    def key_of(self, doc: T) -> dict[str, Any]:
        # A persisted document is addressed by the key it was loaded with.
        original = doc.changed_attributes if doc.persisted else {}
        schema = self._schema
        hash_key = original.get(schema.hash_key, doc.hash_key)
        range_key = original.get(schema.range_key, doc.range_key) if schema.range_key is not None else None
        return self.key(hash_key, range_key)

    def to_item(self, doc: T, *, overrides: Mapping[str, Any] | None = None) -> dict[str, Any]:
        values = doc.attributes
        if overrides:
            values.update(overrides)
        item: dict[str, Any] = {}
        for name, attr in self._schema.attributes.items():
            primitive = dump(values.get(name), attr, self._options)
            if primitive is ABSENT:
                continue
            item[attr.attribute_name] = self._serializer.serialize(primitive)
        return item

    def load_values(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for attribute_name, av in raw.items():
            attr = self._by_attribute_name.get(attribute_name)
            if attr is None:
                continue
            values[attr.python_name] = load(self._deserializer.deserialize(av), attr, self._options)
        return values

    def load_item(self, raw: Mapping[str, Any]) -> T:
        return self._model.instantiate(self.load_values(raw))

    # -- internals ---------------------------------------------------------------

    def _insert(self, doc: T, *, strict: bool, validate: bool = True) -> bool:
        def body() -> bool:
            doc.assign_attributes(self.new_record_values(doc, self.now()))
            req = self.put_request(doc)
            try:
                self._call_write("put_item", req)
            except ConditionFailedError as err:
                raise RecordNotUnique(
                    f"{self._schema.model_name}: an item with key {doc.hash_key!r}, {doc.range_key!r} already exists"
                ) from err
            doc.mark_persisted()
            return True

        result = callbacks.run_lifecycle(doc, ("save", "create"), body, validation=validate)
        return self._outcome(doc, result, strict=strict)

    def _save(self, doc: T, *, strict: bool, validate: bool, touch: bool) -> bool:
        self._ensure_live(doc)
        if doc.new_record:
            return self._insert(doc, strict=strict, validate=validate)

        def body() -> bool:
            if not doc.changed:
                return True
            req, _ = self.save_request(doc, touch=touch)
            req["ReturnValues"] = "ALL_NEW"
            try:
                resp = self._call_write("update_item", req)
            except ConditionFailedError as err:
                raise StaleObjectError(doc, "save") from err
            self._refresh(doc, resp)
            doc.clear_changes()
            return True

        result = callbacks.run_lifecycle(doc, ("save", "update"), body, validation=validate)
        return self._outcome(doc, result, strict=strict)

    def _update(
        self,
        doc: T,
        fn: Callable[[ItemUpdater], Any],
        *,
        if_equal: Mapping[str, Any] | None,
    ) -> bool:
        self._ensure_live(doc)
        key = self.key_of(doc)

        def body() -> bool:
            updater = ItemUpdater(self._schema, self._options)
            fn(updater)
            lock = self._schema.lock_attribute
            if lock is not None:
                updater.add(lock, 1)
            if self.timestamps and "updated_at" not in updater.attribute_names:
                updater.set("updated_at", self.now())

            builder = ExpressionBuilder()
            req: dict[str, Any] = {
                "TableName": self._table_name,
                "Key": key,
                "UpdateExpression": updater.build(builder),
                "ReturnValues": "ALL_NEW",
            }
            parts = [attribute_exists(builder, "c", self._schema.attribute(self._schema.hash_key))]
            parts.extend(self._equality_conditions(builder, if_equal))
            req["ConditionExpression"] = " AND ".join(parts)
            try:
                resp = self._call_write("update_item", builder.apply(req))
            except ConditionFailedError as err:
                raise StaleObjectError(doc, "update") from err
            self._refresh(doc, resp)
            return True

        return callbacks.run_lifecycle(doc, ("touch",), body, validation=False) is True

    def _destroy(self, doc: T, *, strict: bool) -> bool:
        def body() -> bool:
            self.delete(doc)
            return True

        result = callbacks.run_lifecycle(doc, ("destroy",), body, validation=False)
        if result is ABORT:
            if strict:
                raise RecordNotDestroyed(doc)
            return False
        return True

    def _outcome(self, doc: T, result: Any, *, strict: bool) -> bool:
        if result is INVALID:
            if strict:
                raise DocumentNotValid(doc)
            return False
        if result is ABORT:
            if strict:
                raise RecordNotSaved(doc)
            return False
        return True

    def _refresh(self, doc: T, resp: Mapping[str, Any], names: Iterable[str] | None = None) -> None:
        raw = resp.get("Attributes")
        if raw:
            loaded = self.load_values(raw)
            targets = self._schema.attributes if names is None else names
            doc.load_values({name: loaded.get(name) for name in targets})

    def _call_write(self, method: str, req: dict[str, Any]) -> dict[str, Any]:
        call = getattr(self._client, method)
        logger.debug("%s %s", method, self._table_name)
        try:
            return call(**req)
        except ClientError as err:
            if error_code(err) != "ResourceNotFoundException" or not self._config.create_table_on_save:
                raise map_client_error(err) from err
            logger.info("table %s does not exist; creating it before retrying %s", self._table_name, method)

        self.create_table()
        try:
            return call(**req)
        except ClientError as err:
            raise map_client_error(err) from err

    def _batch_write(self, requests: Sequence[dict[str, Any]], *, operation: str) -> None:
        backoff: Backoff | None = None
        for chunk in _chunked(requests, _BATCH_WRITE_SIZE):
            pending = list(chunk)
            attempts = 0
            while pending:
                logger.debug("BatchWriteItem %s requests=%d", self._table_name, len(pending))
                try:
                    resp = self._client.batch_write_item(RequestItems={self._table_name: pending})
                except ClientError as err:
                    raise map_client_error(err) from err

                pending = list(resp.get("UnprocessedItems", {}).get(self._table_name, []) or [])
                if pending:
                    if attempts >= self._config.batch_max_retries:
                        raise BatchRetryExceededError(operation=operation, unprocessed_count=len(pending))
                    attempts += 1
                    backoff = backoff or self._config.build_backoff()
                    if backoff is not None:
                        backoff()

    def _lock_condition(self, builder: ExpressionBuilder, expected: Any) -> str:
        lock = self._schema.lock_attribute
        assert lock is not None
        attr = self._schema.attribute(lock)
        if expected is None:
            return attribute_not_exists(builder, "c", attr)
        return render_condition(builder, "c", attr, Condition(lock, "eq", (expected,)), self._options)

    def _equality_conditions(self, builder: ExpressionBuilder, if_equal: Mapping[str, Any] | None) -> list[str]:
        out: list[str] = []
        for name, value in (if_equal or {}).items():
            attr = self._schema.attribute(name)
            out.append(render_condition(builder, "c", attr, Condition(name, "eq", (value,)), self._options))
        return out

    def _ensure_live(self, doc: T) -> None:
        if doc.destroyed:
            raise DocumentDestroyedError(f"{self._schema.model_name}: the document was destroyed")

    def _consistent(self, consistent_read: bool | None) -> bool:
        return self._config.consistent_read if consistent_read is None else consistent_read

    def split_key(self, key: Any) -> tuple[Any, Any]:
        if self._schema.range_key is None:
            if isinstance(key, tuple):
                if len(key) != 2 or key[1] is not None:
                    raise ValidationError(f"{self._schema.model_name}: expected a partition key value")
                return key[0], None
            return key, None
        if not isinstance(key, tuple) or len(key) != 2:
            raise ValidationError(f"{self._schema.model_name}: expected key tuple (partition, sort)")
        return key

    def _require_key_in(self, item: Mapping[str, Any]) -> None:
        schema = self._schema
        if self._attribute_name(schema.hash_key) not in item:
            raise MissingHashKey(f"{schema.model_name}: missing partition key {schema.hash_key}")
        if schema.range_key is not None and self._attribute_name(schema.range_key) not in item:
            raise MissingRangeKey(f"{schema.model_name}: missing sort key {schema.range_key}")

    def _attribute_name(self, python_name: str) -> str:
        return self._schema.attribute(python_name).attribute_name

    def _serialize_key(self, python_name: str, value: Any) -> dict[str, Any]:
        attr: AttributeDefinition = self._schema.attribute(python_name)
        return self._serializer.serialize(dump_operand(value, attr, self._options))
