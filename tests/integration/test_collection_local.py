from __future__ import annotations

from collections.abc import Callable

import pytest

from dynadoc import Document, Projection, Session, dynadoc_field, gsi
from dynadoc.errors import ConditionFailedError, StaleObjectError


class Reading(
    Document,
    table="readings",
    indexes=[gsi("by_site", partition="site", sort="value", projection=Projection.all())],
):
    sensor: str | None = dynadoc_field(roles=["pk"])
    seq: int | None = dynadoc_field(roles=["sk"])
    site: str | None = None
    value: int | None = None
    hits: int | None = None
    lock_version: int | None = dynadoc_field(roles=["version"])


def test_optimistic_locking_against_dynamodb_local(make_session: Callable[..., Session]) -> None:
    readings = make_session(Reading).collection(Reading)
    readings.create_strict(sensor="s1", seq=1, site="north", value=5)

    first = readings.find("s1", 1, consistent_read=True)
    second = readings.find("s1", 1, consistent_read=True)

    first.value = 6
    readings.save_strict(first)
    assert first.lock_version == 2

    second.value = 7
    with pytest.raises(StaleObjectError):
        readings.save(second)

    readings.increment(first, "hits", 3)
    assert first.hits == 3
    assert first.lock_version == 3


def test_queries_pages_and_bulk_delete(make_session: Callable[..., Session]) -> None:
    readings = make_session(Reading).collection(Reading)
    readings.import_([{"sensor": "s1", "seq": i, "site": "north", "value": i} for i in range(1, 8)])

    chain = readings.where(sensor="s1", seq__gt=2, seq__lt=6).consistent()
    assert [doc.seq for doc in chain] == [3, 4, 5]
    assert chain.count() == 3

    assert len(readings.where(sensor="s1").record_limit(4).batch(3).all()) == 4
    assert sorted(readings.where(site="north", value__gte=6).pluck("seq")) == [6, 7]

    pages = list(readings.where(sensor="s1").batch(5).find_by_pages())
    assert sum(len(page.items) for page in pages) == 7

    assert readings.where(sensor="s1").delete_all() == 7
    assert readings.where(sensor="s1").consistent().count() == 0


def test_transactions_are_all_or_nothing(make_session: Callable[..., Session]) -> None:
    session = make_session(Reading)
    readings = session.collection(Reading)
    readings.create_strict(sensor="s1", seq=1, value=1)

    tx = session.transaction()
    fresh = tx.create(Reading, {"sensor": "s2", "seq": 1, "value": 2})
    tx.create(Reading, {"sensor": "s1", "seq": 1, "value": 3})
    with pytest.raises(ConditionFailedError):
        tx.commit()

    assert fresh.new_record
    assert readings.find_many([("s2", 1)]) == []

    with session.transaction() as ok:
        ok.create(Reading, {"sensor": "s2", "seq": 1, "value": 2})
        ok.update_fields(Reading, "s1", 1, {"value": 10})
    assert readings.find("s1", 1, consistent_read=True).value == 10


def test_transactional_reads_and_partiql(make_session: Callable[..., Session]) -> None:
    session = make_session(Reading)
    readings = session.collection(Reading)
    readings.create_strict(sensor="s3", seq=1, site="east", value=1)
    readings.create_strict(sensor="s3", seq=2, site="east", value=2)

    with session.transaction_read() as tx:
        tx.find(Reading, "s3", 2)
        tx.find_many(Reading, [("s3", 1), ("s3", 9)], raise_error=False)

    assert [(r.seq, r.value) for r in tx.results] == [(2, 2), (1, 1)]

    statement = f'SELECT * FROM "{readings.table_name}" WHERE sensor = ? AND seq >= ?'
    found = readings.find_by_pql(statement, ["s3", 2])
    assert [r.seq for r in found] == [2]
