from __future__ import annotations

from datetime import UTC, datetime

import pytest

from dynadoc import Criteria, Document, Limits, Projection, dynadoc_field, gsi, lsi
from dynadoc.criteria import build_conditions
from dynadoc.errors import InvalidQuery, UnknownAttribute
from dynadoc.planner import plan


class Event(Document, table="events", indexes=[gsi("by_category", partition="category", sort="created_at")]):
    id: str | None = dynadoc_field(roles=["pk"])
    category: str | None = None
    score: int | None = None
    rank: int | None = None


class Reading(
    Document,
    table="readings",
    indexes=[
        lsi("by_value", sort="value"),
        gsi("by_site", partition="site", projection=Projection.keys_only()),
    ],
):
    sensor: str | None = dynadoc_field(roles=["pk"])
    at: int | None = dynadoc_field(roles=["sk"])
    value: int | None = None
    site: str | None = None
    note: str | None = None


def criteria(model: type[Document], **conditions: object) -> Criteria:
    return Criteria().with_conditions(build_conditions(model.__schema__, None, conditions))


def test_hash_and_range_on_secondary_index_plan_a_query() -> None:
    since = datetime(2024, 1, 1, tzinfo=UTC)
    result = plan(Event.__schema__, criteria(Event, category="Client", created_at__gt=since))

    assert result.operation == "Query"
    assert result.index_name == "by_category"
    assert result.index_type == "GSI"
    assert [(c.attribute, c.operator) for c in result.key_conditions] == [("category", "eq"), ("created_at", "gt")]
    assert result.filter_conditions == ()


def test_plans_are_deterministic() -> None:
    conditions = criteria(Event, category="Client", score__gt=3)
    first = plan(Event.__schema__, conditions)
    second = plan(Event.__schema__, conditions)

    assert first == second
    assert first.id == second.id


def test_range_conditions_on_non_key_attributes_scan() -> None:
    result = plan(Event.__schema__, criteria(Event, score__gt=1, rank__lt=5))

    assert result.operation == "Scan"
    assert result.index_name is None
    assert {c.attribute for c in result.filter_conditions} == {"score", "rank"}


def test_gt_and_lt_on_sort_key_become_one_between() -> None:
    result = plan(Reading.__schema__, criteria(Reading, sensor="s1", at__gt=10, at__lt=20))

    assert result.operation == "Query"
    assert result.index_name is None
    between = result.key_conditions[-1]
    assert (between.attribute, between.operator, between.values) == ("at", "between", (10, 20))
    assert result.exclusive_lower
    assert result.exclusive_upper


def test_gte_and_lte_pair_is_inclusive() -> None:
    result = plan(Reading.__schema__, criteria(Reading, sensor="s1", at__gte=10, at__lte=20))
    assert not result.exclusive_lower
    assert not result.exclusive_upper


def test_table_key_match_wins_when_all_conditions_are_keys() -> None:
    result = plan(Reading.__schema__, criteria(Reading, sensor="s1", at=5))
    assert result.operation == "Query"
    assert result.index_name is None
    assert result.filter_conditions == ()


def test_local_index_with_range_is_preferred_over_table_hash_only() -> None:
    result = plan(Reading.__schema__, criteria(Reading, sensor="s1", value__gte=3, note="x"))

    assert result.index_name == "by_value"
    assert result.index_type == "LSI"
    assert [c.attribute for c in result.filter_conditions] == ["note"]


def test_keys_only_index_requires_a_covering_projection() -> None:
    conditions = criteria(Reading, site="north")

    assert plan(Reading.__schema__, conditions).operation == "Scan"

    covered = plan(Reading.__schema__, conditions, projection=["sensor", "at"])
    assert covered.operation == "Query"
    assert covered.index_name == "by_site"


def test_global_index_is_skipped_for_consistent_reads() -> None:
    conditions = criteria(Event, category="Client")
    assert plan(Event.__schema__, conditions, consistent_read=True).operation == "Scan"


def test_forced_index_errors() -> None:
    with pytest.raises(InvalidQuery, match="unknown index: missing"):
        plan(Event.__schema__, criteria(Event, category="x"), index_name="missing")

    with pytest.raises(InvalidQuery, match="consistent reads are not supported"):
        plan(Event.__schema__, criteria(Event, category="x"), index_name="by_category", consistent_read=True)

    with pytest.raises(InvalidQuery, match="cannot serve these conditions"):
        plan(Event.__schema__, criteria(Event, score=1), index_name="by_category")


def test_forced_index_is_used_even_with_extra_filters() -> None:
    result = plan(Event.__schema__, criteria(Event, category="x", score=2), index_name="by_category")
    assert result.index_name == "by_category"
    assert [c.attribute for c in result.filter_conditions] == ["score"]


def test_projection_names_are_validated() -> None:
    with pytest.raises(UnknownAttribute):
        plan(Event.__schema__, Criteria(), projection=["nope"])


def test_limits_request_limit_is_the_smallest_set_limit() -> None:
    assert Limits().request_limit() is None
    assert Limits(record_limit=10, batch_size=3).request_limit() == 3
    assert Limits(record_limit=2, scan_limit=5).request_limit() == 2


@pytest.mark.parametrize(
    "conditions",
    [
        {"at__gt": 10, "at__gte": 11},
        {"at__begins_with": "1", "at__lt": 20},
        {"at__between": (1, 5), "at__lte": 4},
    ],
)
def test_conflicting_sort_key_ranges_are_rejected(conditions: dict[str, object]) -> None:
    with pytest.raises(InvalidQuery, match="sort key at allows one range condition"):
        plan(Reading.__schema__, criteria(Reading, sensor="s1", **conditions))

    with pytest.raises(InvalidQuery):
        plan(Reading.__schema__, criteria(Reading, **conditions))


def test_sort_key_range_plus_equality_filter_is_still_plannable() -> None:
    result = plan(Reading.__schema__, criteria(Reading, sensor="s1", at__gt=10, value=3))

    assert result.operation == "Query"
    assert [c.operator for c in result.key_conditions] == ["eq", "gt"]
