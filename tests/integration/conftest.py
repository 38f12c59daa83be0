from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from dynadoc import Config, Session, create_client


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if os.environ.get("DYNAMODB_ENDPOINT"):
        return
    skip = pytest.mark.skip(reason="DYNAMODB_ENDPOINT is not set")
    here = Path(__file__).parent
    for item in items:
        if here in Path(item.fspath).parents:
            item.add_marker(skip)


@pytest.fixture()
def local_config() -> Config:
    return Config(
        namespace=f"dynadoc_it_{uuid.uuid4().hex[:12]}",
        region=os.environ.get("AWS_REGION", "us-east-1"),
        endpoint_url=os.environ["DYNAMODB_ENDPOINT"],
        access_key=os.environ.get("AWS_ACCESS_KEY_ID", "dummy"),
        secret_key=os.environ.get("AWS_SECRET_ACCESS_KEY", "dummy"),
        billing_mode="PAY_PER_REQUEST",
        table_poll_interval=0.1,
    )


@pytest.fixture()
def make_session(local_config: Config) -> Iterator[Callable[..., Session]]:
    sessions: list[Session] = []

    def make(*models: type) -> Session:
        session = Session(config=local_config, client=create_client(local_config), models=models)
        session.create_tables()
        sessions.append(session)
        return session

    yield make

    for session in sessions:
        for model in session.registry.models():
            session.collection(model).delete_table(ignore_missing=True)
