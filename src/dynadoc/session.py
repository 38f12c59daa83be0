from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from typing import Any

from botocore.exceptions import ClientError

from . import schema as table_admin
from .aws_errors import map_client_error
from .collection import Collection
from .config import Config
from .connection import create_client
from .document import Document
from .errors import ValidationError
from .model import SchemaRegistry
from .transaction import TransactionRead, TransactionWrite

logger = logging.getLogger(__name__)


class Session:
    """Application context: configuration, the DynamoDB client and the frozen model registry."""

    def __init__(
        self,
        *,
        config: Config | None = None,
        client: Any | None = None,
        models: Iterable[type[Document]] = (),
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config or Config()
        self._client = client
        self._sleep = sleep
        self._registry = SchemaRegistry()
        for model in models:
            self._registry.register(model)
        self._registry.freeze()
        self._collections: dict[type[Any], Collection[Any]] = {}
        self._lock = threading.Lock()

    @property
    def config(self) -> Config:
        return self._config

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    @property
    def client(self) -> Any:
        with self._lock:
            if self._client is None:
                self._client = create_client(self._config)
            return self._client

    def collection[T: Document](self, model: type[T]) -> Collection[T]:
        if model not in self._registry:
            raise ValidationError(f"model is not registered with this session: {model.__name__}")
        client = self.client
        with self._lock:
            existing = self._collections.get(model)
            if existing is None:
                existing = Collection(model, client=client, config=self._config, sleep=self._sleep)
                self._collections[model] = existing
            return existing

    def transaction(self) -> TransactionWrite:
        return TransactionWrite(self.collection, self.client)

    def transaction_read(self) -> TransactionRead:
        return TransactionRead(self.collection, self.client)

    def create_tables(self) -> list[str]:
        """Creates the table of every registered model that does not exist yet."""

        existing = set(table_admin.list_tables(client=self.client))
        created: list[str] = []
        for model in self._registry.models():
            collection = self.collection(model)
            if collection.table_name in existing:
                logger.debug("table %s already exists", collection.table_name)
                continue
            if collection.create_table():
                created.append(collection.table_name)
            existing.add(collection.table_name)
        return created

    def ping(self) -> bool:
        try:
            self.client.list_tables(Limit=1)
        except ClientError as err:
            raise map_client_error(err) from err
        return True
