from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from .criteria import Criteria, build_conditions
from .cursor import decode_cursor
from .document import Document
from .enumerator import Page, ResultEnumerator
from .errors import InvalidQuery, ValidationError
from .planner import Limits, QueryPlan, plan

if TYPE_CHECKING:
    from .collection import Collection


@dataclass(frozen=True)
class _ChainState:
    criteria: Criteria = Criteria()
    limits: Limits = Limits()
    consistent_read: bool | None = None
    index_name: str | None = None
    projection: tuple[str, ...] | None = None
    scan_forward: bool = True
    start: Any = None
    warn_on_scan: bool = True


class Chain[T: Document]:
    """An immutable, lazily executed query over one model's table.

    Every builder method returns a new chain, so chains branched from a common
    base never see each other's conditions or options.
    """

    def __init__(self, collection: Collection[T], state: _ChainState | None = None) -> None:
        self._collection = collection
        self._state = state or _ChainState()

    def _with(self, **changes: Any) -> Chain[T]:
        return Chain(self._collection, replace(self._state, **changes))

    # -- builders ----------------------------------------------------------------

    def where(self, conditions: Mapping[str, Any] | None = None, /, **keywords: Any) -> Chain[T]:
        parsed = build_conditions(
            self._collection.schema,
            conditions,
            keywords,
            unknown_attribute_policy=self._collection.config.unknown_attribute_policy,
        )
        return self._with(criteria=self._state.criteria.with_conditions(parsed))

    def record_limit(self, n: int) -> Chain[T]:
        return self._with(limits=replace(self._state.limits, record_limit=_positive("record_limit", n, zero=True)))

    def scan_limit(self, n: int) -> Chain[T]:
        return self._with(limits=replace(self._state.limits, scan_limit=_positive("scan_limit", n)))

    def batch(self, n: int) -> Chain[T]:
        return self._with(limits=replace(self._state.limits, batch_size=_positive("batch", n)))

    def consistent(self, flag: bool = True) -> Chain[T]:
        return self._with(consistent_read=flag)

    def with_index(self, name: str) -> Chain[T]:
        self._collection.schema.index(name)
        return self._with(index_name=name)

    def project(self, *names: str) -> Chain[T]:
        for name in names:
            self._collection.schema.attribute(name)
        return self._with(projection=tuple(names))

    def scan_index_forward(self, forward: bool = True) -> Chain[T]:
        return self._with(scan_forward=forward)

    def start(self, start: Mapping[str, Any] | Document | str) -> Chain[T]:
        """Resumes after ``start``: a document, a low-level key, or a page cursor."""

        return self._with(start=start)

    def without_scan_warning(self) -> Chain[T]:
        return self._with(warn_on_scan=False)

    # -- execution ---------------------------------------------------------------

    def explain(self) -> QueryPlan:
        state = self._state
        consistent_read = state.consistent_read
        if consistent_read is None:
            consistent_read = self._collection.config.consistent_read
        return plan(
            self._collection.schema,
            state.criteria,
            index_name=state.index_name,
            projection=state.projection,
            consistent_read=consistent_read,
            limits=state.limits,
            scan_forward=state.scan_forward,
        )

    def enumerator(self) -> ResultEnumerator[T]:
        query_plan = self.explain()
        config = self._collection.config
        return ResultEnumerator(
            self._collection,
            query_plan,
            start_key=self._start_key(query_plan),
            backoff_factory=config.build_backoff,
            warn_on_scan=self._state.warn_on_scan and config.warn_on_scan,
        )

    def __iter__(self) -> Iterator[T]:
        return iter(self.enumerator())

    def all(self) -> list[T]:
        return list(self)

    def first(self) -> T | None:
        return next(iter(self.record_limit(1)), None)

    def count(self) -> int:
        return self.enumerator().count()

    def pluck(self, *names: str) -> list[Any]:
        if not names:
            raise ValidationError("pluck requires at least one attribute")
        rows = self.project(*names)
        if len(names) == 1:
            return [getattr(doc, names[0]) for doc in rows]
        return [tuple(getattr(doc, name) for name in names) for doc in rows]

    def find_by_pages(self) -> Iterator[Page[T]]:
        return self.enumerator().pages()

    def delete_all(self) -> int:
        """Deletes every matching item with batched, unconditional deletes."""

        schema = self._collection.schema
        keys = [
            (doc.hash_key, doc.range_key) if schema.range_key is not None else doc.hash_key
            for doc in self.project(*schema.key_attributes())
        ]
        if not keys:
            return 0
        return self._collection.delete_keys(keys)

    def _start_key(self, query_plan: QueryPlan) -> dict[str, Any] | None:
        start = self._state.start
        if start is None:
            return None

        if isinstance(start, str):
            cursor = decode_cursor(start)
            if cursor.index != query_plan.index_name:
                raise InvalidQuery(
                    f"cursor was issued for index {cursor.index!r}, the query uses {query_plan.index_name!r}"
                )
            return cursor.last_key

        if isinstance(start, Document):
            key = self._collection.key_of(start)
            if query_plan.index_name is not None:
                schema = self._collection.schema
                idx = schema.index(query_plan.index_name)
                item = self._collection.to_item(start)
                for name in (idx.hash_key, idx.range_key):
                    if name is not None:
                        attribute_name = schema.attribute(name).attribute_name
                        if attribute_name in item:
                            key[attribute_name] = item[attribute_name]
            return key

        return dict(start)


def _positive(name: str, n: int, *, zero: bool = False) -> int:
    if isinstance(n, bool) or not isinstance(n, int) or n < (0 if zero else 1):
        raise ValidationError(f"{name} must be a {'non-negative' if zero else 'positive'} integer")
    return n
