from __future__ import annotations

from typing import Any

import pytest

from dynadoc import Collection, Config, Document, dynadoc_field, validates
from dynadoc.errors import BatchRetryExceededError, MissingRangeKey, ValidationError
from dynadoc.testkit import ANY, FakeDynamoDBClient, item, no_sleep, recording_sleep


class City(Document, table="cities"):
    id: str | None = dynadoc_field(roles=["pk"])
    city: str | None = None
    country: str | None = None

    @validates
    def country_present(self) -> str | None:
        return None if self.country else "country is required"


class Visit(Document, table="visits", timestamps=False):
    city_id: str | None = dynadoc_field(roles=["pk"])
    day: str | None = dynadoc_field(roles=["sk"])


def cities(client: FakeDynamoDBClient, **config: Any) -> Collection[City]:
    return Collection(City, client=client, config=Config(namespace="test", **config), sleep=no_sleep)


def test_import_writes_one_batch_and_skips_validation() -> None:
    client = FakeDynamoDBClient()

    def one_batch(req: Any) -> None:
        puts = req["RequestItems"]["test_cities"]
        assert [p["PutRequest"]["Item"]["city"] for p in puts] == [{"S": "Chicago"}, {"S": "New York"}]
        assert all("id" in p["PutRequest"]["Item"] for p in puts)

    client.expect("batch_write_item", one_batch, response={"UnprocessedItems": {}})
    docs = cities(client).import_([{"city": "Chicago"}, {"city": "New York"}])

    assert [doc.city for doc in docs] == ["Chicago", "New York"]
    assert all(doc.persisted and not doc.changed for doc in docs)
    assert all(doc.created_at is not None for doc in docs)
    client.assert_no_pending()


def test_import_retries_unprocessed_items_with_backoff() -> None:
    delays, sleep = recording_sleep()
    client = FakeDynamoDBClient()
    collection = cities(client, backoff="constant", backoff_options={"seconds": 2, "sleep": sleep})

    client.expect("batch_write_item", response={"UnprocessedItems": {"test_cities": [{"PutRequest": ANY}]}})
    client.expect("batch_write_item", {"RequestItems": {"test_cities": [ANY]}}, response={})

    collection.import_([City(id="c1", city="Oslo")])
    assert delays == [2]
    client.assert_no_pending()


def test_import_gives_up_after_the_retry_limit() -> None:
    client = FakeDynamoDBClient()
    collection = cities(client, batch_max_retries=1)
    unprocessed = {"UnprocessedItems": {"test_cities": [{"PutRequest": {"Item": item(id="c1")}}]}}
    client.expect("batch_write_item", response=unprocessed)
    client.expect("batch_write_item", response=unprocessed)

    with pytest.raises(BatchRetryExceededError) as excinfo:
        collection.import_([{"id": "c1"}])

    assert excinfo.value.operation == "import"
    assert excinfo.value.unprocessed_count == 1


def test_import_requires_the_sort_key() -> None:
    client = FakeDynamoDBClient()
    collection = Collection(Visit, client=client, config=Config(namespace="test"))
    with pytest.raises(MissingRangeKey):
        collection.import_([{"city_id": "paris"}])
    assert client.calls == []


def test_find_many_follows_unprocessed_keys() -> None:
    delays, sleep = recording_sleep()
    client = FakeDynamoDBClient()
    collection = cities(client, backoff="exponential", backoff_options={"base_backoff": 0.1, "sleep": sleep})

    client.expect(
        "batch_get_item",
        {"RequestItems": {"test_cities": {"Keys": [{"id": {"S": "a"}}, {"id": {"S": "b"}}], "ConsistentRead": False}}},
        response={
            "Responses": {"test_cities": [item(id="a", city="Austin")]},
            "UnprocessedKeys": {"test_cities": {"Keys": [{"id": {"S": "b"}}]}},
        },
    )
    client.expect(
        "batch_get_item",
        {"RequestItems": {"test_cities": {"Keys": [{"id": {"S": "b"}}]}}},
        response={"Responses": {"test_cities": [item(id="b", city="Boston")]}},
    )

    found = collection.find_many(["a", "b"])
    assert sorted(doc.city for doc in found) == ["Austin", "Boston"]
    assert delays == [0.1]


def test_find_many_chunks_keys_and_validates_shape() -> None:
    client = FakeDynamoDBClient()
    collection = cities(client)
    client.expect("batch_get_item", lambda req: None, response={})
    client.expect("batch_get_item", lambda req: None, response={})

    assert collection.find_many([f"c{i}" for i in range(150)]) == []
    assert [len(r["RequestItems"]["test_cities"]["Keys"]) for r in client.calls_to("batch_get_item")] == [100, 50]
    assert collection.find_many([]) == []

    visits = Collection(Visit, client=client, config=Config(namespace="test"))
    with pytest.raises(ValidationError, match="expected key tuple"):
        visits.find_many(["paris"])


def test_delete_keys_writes_in_chunks_of_25() -> None:
    client = FakeDynamoDBClient()
    visits = Collection(Visit, client=client, config=Config(namespace="test"))
    client.expect("batch_write_item", response={})
    client.expect("batch_write_item", response={})

    deleted = visits.delete_keys([("paris", f"d{i:02d}") for i in range(30)])

    assert deleted == 30
    sizes = [len(r["RequestItems"]["test_visits"]) for r in client.calls_to("batch_write_item")]
    assert sizes == [25, 5]
    first = client.calls_to("batch_write_item")[0]["RequestItems"]["test_visits"][0]
    assert first == {"DeleteRequest": {"Key": {"city_id": {"S": "paris"}, "day": {"S": "d00"}}}}
