from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from types import TracebackType
from typing import TYPE_CHECKING, Any

from botocore.exceptions import ClientError

from . import callbacks
from .aws_errors import map_transaction_error
from .callbacks import ABORT, INVALID
from .document import Document
from .errors import (
    DocumentNotValid,
    NotFoundError,
    RecordNotDestroyed,
    RecordNotSaved,
    Rollback,
    TransactionError,
    ValidationError,
)

if TYPE_CHECKING:
    from .collection import Collection

logger = logging.getLogger(__name__)

MAX_TRANSACTION_ACTIONS = 100


def _noop() -> None:
    return None


@dataclass(frozen=True)
class TransactAction:
    """One ``TransactItems`` entry and the local state change applied once the transaction succeeded."""

    request: dict[str, Any]
    on_commit: Callable[[], None] = _noop


class TransactionWrite:
    """Collects writes across models and sends them as one ``TransactWriteItems`` call.

    Validation and hooks run when an action is registered; documents are only
    marked persisted, destroyed or clean after the backend accepted the
    whole transaction.
    """

    def __init__(self, resolve: Callable[[type[Any]], Collection[Any]], client: Any) -> None:
        self._resolve = resolve
        self._client = client
        self._actions: list[TransactAction] = []
        self._finished = False

    @property
    def actions(self) -> tuple[TransactAction, ...]:
        return tuple(self._actions)

    def __enter__(self) -> TransactionWrite:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if exc_type is None:
            self.commit()
            return False
        self.rollback()
        return issubclass(exc_type, Rollback)

    # -- actions -----------------------------------------------------------------

    def create[T: Document](
        self,
        model: type[T],
        attrs: Mapping[str, Any] | None = None,
        *,
        skip_callbacks: bool = False,
        skip_validation: bool = False,
    ) -> T:
        doc = model(**(attrs or {}))
        self._register_create(doc, strict=False, skip_callbacks=skip_callbacks, skip_validation=skip_validation)
        return doc

    def create_strict[T: Document](
        self,
        model: type[T],
        attrs: Mapping[str, Any] | None = None,
        *,
        skip_callbacks: bool = False,
        skip_validation: bool = False,
    ) -> T:
        doc = model(**(attrs or {}))
        self._register_create(doc, strict=True, skip_callbacks=skip_callbacks, skip_validation=skip_validation)
        return doc

    def save(self, doc: Document, *, skip_callbacks: bool = False, skip_validation: bool = False) -> bool:
        return self._register_save(doc, strict=False, skip_callbacks=skip_callbacks, skip_validation=skip_validation)

    def save_strict(self, doc: Document, *, skip_callbacks: bool = False, skip_validation: bool = False) -> bool:
        return self._register_save(doc, strict=True, skip_callbacks=skip_callbacks, skip_validation=skip_validation)

    def update_attributes(
        self,
        doc: Document,
        attrs: Mapping[str, Any],
        *,
        skip_callbacks: bool = False,
        skip_validation: bool = False,
    ) -> bool:
        doc.assign_attributes(attrs)
        return self.save(doc, skip_callbacks=skip_callbacks, skip_validation=skip_validation)

    def update_attributes_strict(
        self,
        doc: Document,
        attrs: Mapping[str, Any],
        *,
        skip_callbacks: bool = False,
        skip_validation: bool = False,
    ) -> bool:
        doc.assign_attributes(attrs)
        return self.save_strict(doc, skip_callbacks=skip_callbacks, skip_validation=skip_validation)

    def update_fields(
        self,
        model: type[Document],
        hash_key: Any,
        range_key: Any = None,
        attrs: Mapping[str, Any] | None = None,
        *,
        if_equal: Mapping[str, Any] | None = None,
    ) -> None:
        """Queues a partial update of an existing item; the transaction fails when it is missing."""

        req = self._resolve(model).update_fields_request(hash_key, range_key, attrs or {}, if_equal=if_equal)
        self._add(TransactAction({"Update": req}))

    def upsert(
        self,
        model: type[Document],
        hash_key: Any,
        range_key: Any = None,
        attrs: Mapping[str, Any] | None = None,
        *,
        if_equal: Mapping[str, Any] | None = None,
    ) -> None:
        req = self._resolve(model).update_fields_request(
            hash_key, range_key, attrs or {}, if_equal=if_equal, upsert=True
        )
        self._add(TransactAction({"Update": req}))

    def delete(self, target: Document | type[Document], hash_key: Any = None, range_key: Any = None) -> None:
        """Queues a delete of a document (lock checked) or of a primary key (unconditional)."""

        if isinstance(target, Document):
            doc = target
            req = self._resolve(type(doc)).delete_request(doc)
            self._add(TransactAction({"Delete": req}, doc.mark_destroyed))
            return

        collection = self._resolve(target)
        self._add(
            TransactAction({"Delete": {"TableName": collection.table_name, "Key": collection.key(hash_key, range_key)}})
        )

    def destroy(self, doc: Document, *, skip_callbacks: bool = False) -> bool:
        return self._register_destroy(doc, strict=False, skip_callbacks=skip_callbacks)

    def destroy_strict(self, doc: Document, *, skip_callbacks: bool = False) -> bool:
        return self._register_destroy(doc, strict=True, skip_callbacks=skip_callbacks)

    # -- completion --------------------------------------------------------------

    def commit(self) -> None:
        if self._finished:
            raise TransactionError("transaction was already committed or rolled back")
        self._finished = True

        actions = list(self._actions)
        if not actions:
            logger.debug("transaction has no actions to commit")
            return
        if len(actions) > MAX_TRANSACTION_ACTIONS:
            raise ValidationError(f"a transaction supports at most {MAX_TRANSACTION_ACTIONS} actions")

        logger.debug("TransactWriteItems actions=%d", len(actions))
        try:
            self._client.transact_write_items(TransactItems=[action.request for action in actions])
        except ClientError as err:
            raise map_transaction_error(err) from err

        for action in actions:
            action.on_commit()

    def rollback(self) -> None:
        self._actions.clear()
        self._finished = True

    # -- internals ---------------------------------------------------------------

    def _add(self, action: TransactAction) -> None:
        if self._finished:
            raise TransactionError("transaction was already committed or rolled back")
        self._actions.append(action)

    def _register_create(self, doc: Document, *, strict: bool, skip_callbacks: bool, skip_validation: bool) -> bool:
        collection = self._resolve(type(doc))
        lock = collection.schema.lock_attribute

        def body() -> bool:
            doc.assign_attributes(
                {k: v for k, v in collection.new_record_values(doc, collection.now()).items() if k != lock}
            )
            overrides = {lock: 1} if lock is not None else None
            req = collection.put_request(doc, overrides=overrides)
            written = {**doc.attributes, **(overrides or {})}

            def on_commit() -> None:
                if lock is not None:
                    doc.load_values({lock: 1})
                doc.mark_persisted()
                doc.mark_written(written)

            self._add(TransactAction({"Put": req}, on_commit))
            return True

        result = callbacks.run_lifecycle(
            doc,
            ("save", "create"),
            body,
            validation=not skip_validation,
            skip_callbacks=skip_callbacks,
        )
        return self._outcome(doc, result, strict=strict)

    def _register_save(self, doc: Document, *, strict: bool, skip_callbacks: bool, skip_validation: bool) -> bool:
        if doc.new_record:
            return self._register_create(
                doc, strict=strict, skip_callbacks=skip_callbacks, skip_validation=skip_validation
            )
        if not doc.changed:
            return True

        collection = self._resolve(type(doc))

        def body() -> bool:
            assigned = set(doc.changed_attributes)
            req, updates = collection.save_request(doc)

            def on_commit() -> None:
                doc.load_values({name: value for name, value in updates.items() if name not in assigned})
                doc.mark_written(updates)

            self._add(TransactAction({"Update": req}, on_commit))
            return True

        result = callbacks.run_lifecycle(
            doc,
            ("save", "update"),
            body,
            validation=not skip_validation,
            skip_callbacks=skip_callbacks,
        )
        return self._outcome(doc, result, strict=strict)

    def _register_destroy(self, doc: Document, *, strict: bool, skip_callbacks: bool) -> bool:
        def body() -> bool:
            self.delete(doc)
            return True

        result = callbacks.run_lifecycle(doc, ("destroy",), body, validation=False, skip_callbacks=skip_callbacks)
        if result is ABORT:
            if strict:
                raise RecordNotDestroyed(doc)
            return False
        return True

    def _outcome(self, doc: Document, result: Any, *, strict: bool) -> bool:
        if result is INVALID:
            if strict:
                raise DocumentNotValid(doc)
            return False
        if result is ABORT:
            if strict:
                raise RecordNotSaved(doc)
            return False
        return True


@dataclass(frozen=True)
class _ReadAction:
    collection: Collection[Any]
    keys: tuple[dict[str, Any], ...]
    single: bool
    raise_error: bool

    def load(self, responses: list[Mapping[str, Any]]) -> list[Any]:
        docs = [self.collection.load_item(r["Item"]) if r.get("Item") else None for r in responses]
        missing = sum(doc is None for doc in docs)
        if missing and self.raise_error:
            model_name = self.collection.schema.model_name
            raise NotFoundError(f"{model_name}: {missing} of {len(docs)} requested items not found")
        if self.single:
            return docs
        return [doc for doc in docs if doc is not None]


class TransactionRead:
    """Reads items of several models as one consistent snapshot with ``TransactGetItems``.

    Keys are validated when a ``find`` is registered; ``commit`` returns the
    documents in registration order.
    """

    def __init__(self, resolve: Callable[[type[Any]], Collection[Any]], client: Any) -> None:
        self._resolve = resolve
        self._client = client
        self._actions: list[_ReadAction] = []
        self._finished = False
        self.results: list[Any] = []

    def __enter__(self) -> TransactionRead:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        if exc_type is None:
            self.results = self.commit()
            return False
        self.rollback()
        return issubclass(exc_type, Rollback)

    def find(self, model: type[Document], hash_key: Any, range_key: Any = None, *, raise_error: bool = True) -> None:
        """Queues one item; a missing item yields ``None`` when ``raise_error`` is false."""

        collection = self._resolve(model)
        self._add(_ReadAction(collection, (collection.key(hash_key, range_key),), True, raise_error))

    def find_many(self, model: type[Document], keys: Iterable[Any], *, raise_error: bool = True) -> None:
        """Queues several items; missing ones are left out when ``raise_error`` is false."""

        collection = self._resolve(model)
        resolved = tuple(collection.key(*collection.split_key(key)) for key in keys)
        if resolved:
            self._add(_ReadAction(collection, resolved, False, raise_error))

    def commit(self) -> list[Any]:
        if self._finished:
            raise TransactionError("transaction was already committed or rolled back")
        self._finished = True

        actions = list(self._actions)
        items = [
            {"Get": {"TableName": action.collection.table_name, "Key": key}}
            for action in actions
            for key in action.keys
        ]
        if not items:
            return []
        if len(items) > MAX_TRANSACTION_ACTIONS:
            raise ValidationError(f"a transaction supports at most {MAX_TRANSACTION_ACTIONS} actions")

        logger.debug("TransactGetItems items=%d", len(items))
        try:
            resp = self._client.transact_get_items(TransactItems=items)
        except ClientError as err:
            raise map_transaction_error(err) from err

        responses = list(resp.get("Responses") or [])
        results: list[Any] = []
        offset = 0
        for action in actions:
            chunk = responses[offset : offset + len(action.keys)]
            offset += len(action.keys)
            results.extend(action.load(chunk))
        return results

    def rollback(self) -> None:
        self._actions.clear()
        self._finished = True

    def _add(self, action: _ReadAction) -> None:
        if self._finished:
            raise TransactionError("transaction was already committed or rolled back")
        self._actions.append(action)
