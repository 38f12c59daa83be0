from __future__ import annotations

import logging

import pytest

from dynadoc import Condition, Criteria, Document, dynadoc_field
from dynadoc.criteria import build_conditions, make_condition, parse_token
from dynadoc.errors import UnknownAttribute, ValidationError


class Order(Document, table="orders"):
    id: str | None = dynadoc_field(roles=["pk"])
    status: str | None = None
    total: int | None = None
    first_name: str | None = None


def test_parse_token_handles_both_separators() -> None:
    assert parse_token("total.gt", ".") == ("total", "gt")
    assert parse_token("total__lte", "__") == ("total", "lte")
    assert parse_token("status", ".") == ("status", "eq")
    assert parse_token("first_name", "__") == ("first_name", "eq")


def test_parse_token_rejects_unknown_dotted_operator() -> None:
    with pytest.raises(ValidationError, match="unsupported operator: bogus"):
        parse_token("total.bogus", ".")


def test_build_conditions_merges_mapping_and_keywords() -> None:
    conditions = build_conditions(Order.__schema__, {"total.gte": 10}, {"status": "paid", "total__lt": 50})

    assert conditions == [
        Condition("total", "gte", (10,)),
        Condition("status", "eq", ("paid",)),
        Condition("total", "lt", (50,)),
    ]


def test_unknown_attribute_raises_or_warns(caplog: pytest.LogCaptureFixture) -> None:
    with pytest.raises(UnknownAttribute, match="Order: unknown attribute: colour"):
        build_conditions(Order.__schema__, {"colour": "red"})

    with caplog.at_level(logging.WARNING, logger="dynadoc.criteria"):
        conditions = build_conditions(Order.__schema__, {"colour": "red"}, unknown_attribute_policy="warn")
    assert conditions == []
    assert "ignoring condition on unknown attribute colour" in caplog.text


@pytest.mark.parametrize(
    ("operator", "value", "message"),
    [
        ("between", [1], "requires two values"),
        ("between", "ab", "requires two values"),
        ("in", "abc", "requires a sequence"),
        ("in", [], "at least one value"),
        ("in", list(range(101)), "maximum 100 values"),
        ("like", 1, "unsupported operator"),
    ],
)
def test_make_condition_validates_operands(operator: str, value: object, message: str) -> None:
    with pytest.raises(ValidationError, match=message):
        make_condition("total", operator, value)


def test_make_condition_normalizes_values() -> None:
    assert make_condition("total", "between", (1, 9)).values == (1, 9)
    assert make_condition("total", "in", {3}).values == (3,)
    assert make_condition("total", "null", 1).value is True


def test_criteria_replaces_same_attribute_and_operator() -> None:
    base = Criteria().with_conditions([Condition("total", "gt", (1,)), Condition("status", "eq", ("new",))])
    merged = base.with_conditions([Condition("total", "gt", (5,)), Condition("total", "lt", (9,))])

    assert base.for_attribute("total") == (Condition("total", "gt", (1,)),)
    assert merged.for_attribute("total") == (Condition("total", "gt", (5,)), Condition("total", "lt", (9,)))
    assert merged.has_eq("status")
    assert not merged.has_eq("total")
    assert merged.attributes == frozenset({"total", "status"})
    assert len(merged) == 3
