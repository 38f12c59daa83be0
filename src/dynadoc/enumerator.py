from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from boto3.dynamodb.types import TypeDeserializer
from botocore.exceptions import ClientError

from .aws_errors import map_client_error
from .backoff import Backoff
from .cursor import encode_cursor
from .dumping import dump_operand
from .expressions import ExpressionBuilder, render_conditions
from .planner import QueryPlan

if TYPE_CHECKING:
    from .collection import Collection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Page[T]:
    items: list[T]
    last_evaluated_key: dict[str, Any] | None
    index_name: str | None = None

    @property
    def cursor(self) -> str | None:
        return encode_cursor(self.last_evaluated_key, index=self.index_name)


def build_request(collection: Collection[Any], plan: QueryPlan, *, select: str | None = None) -> dict[str, Any]:
    schema = collection.schema
    options = collection.dump_options
    builder = ExpressionBuilder()

    req: dict[str, Any] = {
        "TableName": collection.table_name,
        "ConsistentRead": plan.consistent_read,
    }
    if plan.index_name is not None:
        req["IndexName"] = plan.index_name
    if plan.operation == "Query":
        req["KeyConditionExpression"] = render_conditions(builder, "k", schema, plan.key_conditions, options)
        req["ScanIndexForward"] = plan.scan_forward
    if plan.filter_conditions:
        req["FilterExpression"] = render_conditions(builder, "f", schema, plan.filter_conditions, options)
    if plan.projection is not None:
        req["ProjectionExpression"] = ", ".join(builder.name("p", schema.attribute(n)) for n in plan.projection)
    if select is not None:
        req["Select"] = select
    return builder.apply(req)


class ResultEnumerator[T]:
    """Lazily follows ``LastEvaluatedKey`` pages; every ``iter()`` starts a new request sequence."""

    def __init__(
        self,
        collection: Collection[T],
        plan: QueryPlan,
        *,
        start_key: Mapping[str, Any] | None = None,
        backoff_factory: Callable[[], Backoff | None] | None = None,
        warn_on_scan: bool = True,
    ) -> None:
        self._collection = collection
        self._plan = plan
        self._start_key = dict(start_key) if start_key else None
        self._backoff_factory = backoff_factory
        self._warn_on_scan = warn_on_scan
        self._deserializer = TypeDeserializer()

    @property
    def plan(self) -> QueryPlan:
        return self._plan

    def __iter__(self) -> Iterator[T]:
        for page in self.pages():
            yield from page.items

    def pages(self) -> Iterator[Page[T]]:
        for resp, kept in self._responses():
            last = resp.get("LastEvaluatedKey")
            yield Page(
                items=[self._collection.load_item(item) for item in kept],
                last_evaluated_key=dict(last) if last else None,
                index_name=self._plan.index_name,
            )

    def count(self) -> int:
        if self._plan.exclusive_lower or self._plan.exclusive_upper:
            return sum(len(kept) for _, kept in self._responses())
        return sum(int(resp.get("Count", 0)) for resp, _ in self._responses(select="COUNT"))

    def _responses(self, *, select: str | None = None) -> Iterator[tuple[Mapping[str, Any], list[Mapping[str, Any]]]]:
        plan = self._plan
        limits = plan.limits
        if limits.record_limit is not None and limits.record_limit <= 0:
            return

        if plan.operation == "Scan" and self._warn_on_scan:
            logger.warning(
                "%s: full table scan on %s; conditions %s match no key or index",
                self._collection.schema.model_name,
                self._collection.table_name,
                sorted({c.attribute for c in plan.filter_conditions}) or "(none)",
            )

        request = build_request(self._collection, plan, select=select)
        call = getattr(self._collection.client, "query" if plan.operation == "Query" else "scan")
        limit = limits.request_limit()
        backoff = self._backoff_factory() if self._backoff_factory is not None else None
        start = self._start_key
        records = 0
        scanned = 0

        while True:
            req = dict(request)
            if limit is not None:
                req_limit = limit
                if limits.record_limit is not None:
                    req_limit = min(req_limit, limits.record_limit - records)
                if limits.scan_limit is not None:
                    req_limit = min(req_limit, limits.scan_limit - scanned)
                req["Limit"] = req_limit
            if start:
                req["ExclusiveStartKey"] = dict(start)

            logger.debug("%s %s limit=%s", plan.operation, self._collection.table_name, req.get("Limit"))
            try:
                resp = call(**req)
            except ClientError as err:
                raise map_client_error(err) from err

            items = list(resp.get("Items") or [])
            if select == "COUNT":
                kept: list[Mapping[str, Any]] = []
                returned = int(resp.get("Count", 0))
            else:
                kept = [item for item in items if self._within_bounds(item)]
                returned = len(kept)
            if limits.record_limit is not None and records + returned > limits.record_limit:
                returned = limits.record_limit - records
                kept = kept[:returned]

            records += returned
            scanned += int(resp.get("ScannedCount", resp.get("Count", len(items))))
            yield resp, kept

            if limits.record_limit is not None and records >= limits.record_limit:
                return
            if limits.scan_limit is not None and scanned >= limits.scan_limit:
                return
            last = resp.get("LastEvaluatedKey")
            if not last:
                return
            start = last
            if backoff is not None:
                backoff()

    def _within_bounds(self, item: Mapping[str, Any]) -> bool:
        plan = self._plan
        if not (plan.exclusive_lower or plan.exclusive_upper) or plan.range_key is None:
            return True

        attr = self._collection.schema.attribute(plan.range_key)
        raw = item.get(attr.attribute_name)
        if raw is None:
            return True
        stored = self._deserializer.deserialize(raw)
        low, high = plan.key_conditions[-1].values
        options = self._collection.dump_options
        if plan.exclusive_lower and stored == dump_operand(low, attr, options):
            return False
        if plan.exclusive_upper and stored == dump_operand(high, attr, options):
            return False
        return True
