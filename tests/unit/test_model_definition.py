from __future__ import annotations

from datetime import datetime

import pytest

from dynadoc import Document, Projection, SchemaRegistry, dynadoc_field, gsi, lsi
from dynadoc.errors import InvalidQuery, ModelDefinitionError, UnknownAttribute


class Post(
    Document,
    table="posts",
    indexes=[
        gsi("by_author", partition="author_id", sort="published_at", projection=Projection.keys_only()),
        lsi("by_rank", sort="rank", projection=Projection.include("title")),
    ],
    read_capacity=5,
):
    post_id: str | None = dynadoc_field(name="PK", roles=["pk"])
    posted_at: datetime | None = dynadoc_field(name="SK", roles=["sk"])
    author_id: str | None = None
    published_at: datetime | None = None
    rank: int | None = None
    title: str | None = None
    lock_version: int | None = dynadoc_field(roles=["version"])
    expires_at: int | None = dynadoc_field(roles=["ttl"])


class Tag(Document, timestamps=False):
    name: str | None = dynadoc_field(roles=["pk"])


def test_schema_collects_keys_roles_and_options() -> None:
    schema = Post.__schema__

    assert schema.model_name == "Post"
    assert schema.table == "posts"
    assert schema.hash_key == "post_id"
    assert schema.range_key == "posted_at"
    assert schema.lock_attribute == "lock_version"
    assert schema.ttl_attribute == "expires_at"
    assert schema.read_capacity == 5
    assert schema.key_attributes() == ("post_id", "posted_at")
    assert schema.attribute("post_id").attribute_name == "PK"
    assert schema.attribute("posted_at").type == "datetime"


def test_timestamps_add_created_and_updated_at() -> None:
    assert "created_at" in Post.__schema__.attributes
    assert Post.__schema__.attribute("updated_at").type == "datetime"
    assert "created_at" not in Tag.__schema__.attributes


def test_default_table_name_is_pluralized_model_name() -> None:
    assert Tag.__schema__.table == "tags"


def test_indexes_resolve_partition_and_projection() -> None:
    by_author = Post.__schema__.index("by_author")
    assert (by_author.type, by_author.hash_key, by_author.range_key) == ("GSI", "author_id", "published_at")

    by_rank = Post.__schema__.index("by_rank")
    assert (by_rank.type, by_rank.hash_key, by_rank.range_key) == ("LSI", "post_id", "rank")

    assert Post.__schema__.projected_attributes(by_author) == frozenset(
        {"post_id", "posted_at", "author_id", "published_at"}
    )
    assert "title" in (Post.__schema__.projected_attributes(by_rank) or set())


def test_unknown_lookups_raise() -> None:
    with pytest.raises(UnknownAttribute, match="Post: unknown attribute: nope"):
        Post.__schema__.attribute("nope")
    with pytest.raises(InvalidQuery, match="unknown index"):
        Post.__schema__.index("nope")


def test_model_requires_a_partition_key() -> None:
    with pytest.raises(ModelDefinitionError, match="exactly one pk field"):

        class NoKey(Document):
            name: str | None = None


def test_model_rejects_two_partition_keys() -> None:
    with pytest.raises(ModelDefinitionError, match="at most one pk field"):

        class TwoKeys(Document):
            a: str | None = dynadoc_field(roles=["pk"])
            b: str | None = dynadoc_field(roles=["pk"])


def test_version_field_must_be_an_integer() -> None:
    with pytest.raises(ModelDefinitionError, match="version field must be an int"):

        class BadLock(Document):
            id: str | None = dynadoc_field(roles=["pk"])
            lock: str | None = dynadoc_field(roles=["version"])


def test_lsi_requires_a_sort_field_that_exists() -> None:
    with pytest.raises(ModelDefinitionError, match="unknown sort field"):

        class BadIndex(Document, indexes=[lsi("by_missing", sort="missing")]):
            id: str | None = dynadoc_field(roles=["pk"])


def test_unknown_role_is_rejected() -> None:
    with pytest.raises(ModelDefinitionError, match="unknown field roles"):
        dynadoc_field(roles=["primary"])


def test_registry_freezes_after_start_up() -> None:
    registry = SchemaRegistry()
    registry.register(Post)
    registry.register(Post)
    registry.freeze()

    assert registry.frozen
    assert Post in registry
    assert Tag not in registry
    assert registry.get("Post") is Post
    assert registry.models() == (Post,)
    with pytest.raises(ModelDefinitionError, match="frozen"):
        registry.register(Tag)
    with pytest.raises(KeyError):
        registry.get("Tag")


def test_field_defaults_are_optional_and_exclusive() -> None:
    class Counter(Document, timestamps=False):
        name: str | None = dynadoc_field(roles=["pk"])
        hits: int | None = dynadoc_field(default=0)
        seen: set[str] | None = dynadoc_field(default_factory=set)
        note: str | None = dynadoc_field()

    schema = Counter.__schema__
    assert schema.attribute("hits").default_value() == 0
    assert schema.attribute("seen").default_value() == set()
    assert schema.attribute("note").default_value() is None
    assert schema.attribute("name").default_value() is None

    with pytest.raises(ValueError):
        dynadoc_field(default=0, default_factory=int)
