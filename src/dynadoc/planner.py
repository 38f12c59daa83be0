from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from .criteria import RANGE_OPERATORS, Condition, Criteria
from .errors import InvalidQuery
from .model import IndexDefinition, ModelSchema

type QueryOperation = Literal["Query", "Scan"]
type IndexType = Literal["TABLE", "GSI", "LSI"]

_LOWER = frozenset({"gt", "gte"})
_UPPER = frozenset({"lt", "lte"})
_SORT_RANGE = frozenset({"gt", "gte", "lt", "lte", "between", "begins_with"})


@dataclass(frozen=True)
class Limits:
    record_limit: int | None = None
    scan_limit: int | None = None
    batch_size: int | None = None

    def request_limit(self) -> int | None:
        set_limits = [n for n in (self.record_limit, self.scan_limit, self.batch_size) if n is not None]
        return min(set_limits) if set_limits else None


@dataclass(frozen=True)
class QueryPlan:
    id: str
    operation: QueryOperation
    index_name: str | None = None
    index_type: IndexType = "TABLE"
    hash_key: str | None = None
    range_key: str | None = None
    key_conditions: tuple[Condition, ...] = ()
    filter_conditions: tuple[Condition, ...] = ()
    consistent_read: bool = False
    limits: Limits = Limits()
    projection: tuple[str, ...] | None = None
    scan_forward: bool = True
    exclusive_lower: bool = False
    exclusive_upper: bool = False


@dataclass(frozen=True)
class _Candidate:
    name: str | None
    type: IndexType
    hash_key: str
    range_key: str | None
    index: IndexDefinition | None = None


@dataclass(frozen=True)
class _KeyMatch:
    key_conditions: tuple[Condition, ...]
    exclusive_lower: bool = False
    exclusive_upper: bool = False

    @property
    def has_range(self) -> bool:
        return len(self.key_conditions) > 1


def plan(
    schema: ModelSchema,
    criteria: Criteria,
    *,
    index_name: str | None = None,
    projection: Sequence[str] | None = None,
    consistent_read: bool = False,
    limits: Limits | None = None,
    scan_forward: bool = True,
) -> QueryPlan:
    """Chooses between a Query against the table or one of its indexes, and a full Scan.

    Pure: the same schema, criteria and options always produce an equal plan.
    """

    limits = limits or Limits()
    projected = tuple(projection) if projection is not None else None
    if projected is not None:
        for name in projected:
            schema.attribute(name)

    _check_sort_key(schema, criteria)
    candidates = _candidates(schema)

    if index_name is not None:
        forced = next((c for c in candidates if c.name == index_name), None)
        if forced is None:
            schema.index(index_name)
            raise InvalidQuery(f"{schema.model_name}: unknown index: {index_name}")
        if forced.type == "GSI" and consistent_read:
            raise InvalidQuery(f"index {index_name}: consistent reads are not supported on global indexes")
        match = _match(forced, criteria)
        if match is None:
            raise InvalidQuery(
                f"index {index_name} cannot serve these conditions: it needs one eq condition on "
                f"{forced.hash_key} and at most one mergeable range condition on {forced.range_key}"
            )
        return _query_plan(schema, forced, match, criteria, consistent_read, limits, projected, scan_forward)

    table = candidates[0]
    table_match = _match(table, criteria)
    if table_match is not None and len(table_match.key_conditions) == len(criteria):
        return _query_plan(schema, table, table_match, criteria, consistent_read, limits, projected, scan_forward)

    viable: list[tuple[int, _Candidate, _KeyMatch]] = []
    for order, candidate in enumerate(candidates):
        match = table_match if candidate is table else _match(candidate, criteria)
        if match is None:
            continue
        if candidate.type == "GSI":
            if consistent_read or not _projects(schema, candidate, criteria, match, projected):
                continue
        viable.append((order, candidate, match))

    if viable:
        viable.sort(key=lambda entry: (not entry[2].has_range, entry[0]))
        _, candidate, match = viable[0]
        return _query_plan(schema, candidate, match, criteria, consistent_read, limits, projected, scan_forward)

    return QueryPlan(
        id=_plan_id(schema, "Scan", None, criteria.conditions, consistent_read, projected),
        operation="Scan",
        filter_conditions=criteria.conditions,
        consistent_read=consistent_read,
        limits=limits,
        projection=projected,
        scan_forward=scan_forward,
    )


def _check_sort_key(schema: ModelSchema, criteria: Criteria) -> None:
    if schema.range_key is None:
        return
    ranged = [c for c in criteria.for_attribute(schema.range_key) if c.operator in _SORT_RANGE]
    if len(ranged) < 2:
        return
    lower = [c for c in ranged if c.operator in _LOWER]
    upper = [c for c in ranged if c.operator in _UPPER]
    if len(ranged) == 2 and len(lower) == 1 and len(upper) == 1:
        return
    operators = ", ".join(sorted(c.operator for c in ranged))
    raise InvalidQuery(
        f"{schema.model_name}: sort key {schema.range_key} allows one range condition "
        f"(or a lower and an upper bound), got: {operators}"
    )


def _candidates(schema: ModelSchema) -> list[_Candidate]:
    out = [_Candidate(name=None, type="TABLE", hash_key=schema.hash_key, range_key=schema.range_key)]
    for kind in ("LSI", "GSI"):
        for idx in schema.indexes:
            if idx.type == kind:
                out.append(
                    _Candidate(
                        name=idx.name,
                        type="LSI" if kind == "LSI" else "GSI",
                        hash_key=idx.hash_key,
                        range_key=idx.range_key,
                        index=idx,
                    )
                )
    return out


def _match(candidate: _Candidate, criteria: Criteria) -> _KeyMatch | None:
    hash_conditions = criteria.for_attribute(candidate.hash_key)
    if len(hash_conditions) != 1 or hash_conditions[0].operator != "eq":
        return None

    if candidate.range_key is None:
        return _KeyMatch(key_conditions=hash_conditions)

    range_conditions = criteria.for_attribute(candidate.range_key)
    if not range_conditions:
        return _KeyMatch(key_conditions=hash_conditions)

    if len(range_conditions) == 1:
        (condition,) = range_conditions
        if condition.operator not in RANGE_OPERATORS:
            return None
        return _KeyMatch(key_conditions=(*hash_conditions, condition))

    if len(range_conditions) == 2:
        lower = next((c for c in range_conditions if c.operator in _LOWER), None)
        upper = next((c for c in range_conditions if c.operator in _UPPER), None)
        if lower is None or upper is None:
            return None
        between = Condition(candidate.range_key, "between", (lower.value, upper.value))
        return _KeyMatch(
            key_conditions=(*hash_conditions, between),
            exclusive_lower=lower.operator == "gt",
            exclusive_upper=upper.operator == "lt",
        )

    return None


def _projects(
    schema: ModelSchema,
    candidate: _Candidate,
    criteria: Criteria,
    match: _KeyMatch,
    projection: tuple[str, ...] | None,
) -> bool:
    assert candidate.index is not None
    available = schema.projected_attributes(candidate.index)
    if available is None:
        return True

    needed = set(schema.attributes) if projection is None else set(projection)
    key_attributes = {c.attribute for c in match.key_conditions}
    needed.update(c.attribute for c in criteria.conditions if c.attribute not in key_attributes)
    return needed <= available


def _query_plan(
    schema: ModelSchema,
    candidate: _Candidate,
    match: _KeyMatch,
    criteria: Criteria,
    consistent_read: bool,
    limits: Limits,
    projection: tuple[str, ...] | None,
    scan_forward: bool,
) -> QueryPlan:
    key_attributes = {candidate.hash_key, candidate.range_key}
    filters = tuple(c for c in criteria.conditions if c.attribute not in key_attributes)
    return QueryPlan(
        id=_plan_id(schema, "Query", candidate.name, filters, consistent_read, projection),
        operation="Query",
        index_name=candidate.name,
        index_type=candidate.type,
        hash_key=candidate.hash_key,
        range_key=candidate.range_key,
        key_conditions=match.key_conditions,
        filter_conditions=filters,
        consistent_read=consistent_read,
        limits=limits,
        projection=projection,
        scan_forward=scan_forward,
        exclusive_lower=match.exclusive_lower,
        exclusive_upper=match.exclusive_upper,
    )


def _plan_id(
    schema: ModelSchema,
    operation: QueryOperation,
    index_name: str | None,
    filters: Sequence[Condition],
    consistent_read: bool,
    projection: tuple[str, ...] | None,
) -> str:
    parts = [
        operation.lower(),
        schema.model_name,
        f"idx={index_name or ''}",
        f"filter={','.join(sorted(f'{c.attribute}.{c.operator}' for c in filters))}",
        f"proj={','.join(sorted(projection)) if projection is not None else '*'}",
        f"cr={'1' if consistent_read else '0'}",
    ]
    return "|".join(parts)
