from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .callbacks import ABORT, after, before, validates
from .chain import Chain
from .collection import Collection
from .config import Config
from .criteria import Condition, Criteria
from .cursor import Cursor, decode_cursor, encode_cursor
from .document import Document
from .dumping import CustomType
from .enumerator import Page, ResultEnumerator
from .errors import (
    AwsError,
    BatchRetryExceededError,
    ConditionFailedError,
    DocumentDestroyedError,
    DocumentNotValid,
    DynadocError,
    InvalidQuery,
    MissingHashKey,
    MissingRangeKey,
    ModelDefinitionError,
    NotFoundError,
    RecordNotDestroyed,
    RecordNotSaved,
    RecordNotUnique,
    Rollback,
    StaleObjectError,
    TableNotFoundError,
    TransactionCanceledError,
    TransactionError,
    UnknownAttribute,
    UnsupportedKeyType,
    ValidationError,
)
from .model import (
    AttributeDefinition,
    IndexDefinition,
    IndexSpec,
    ModelSchema,
    Projection,
    SchemaRegistry,
    dynadoc_field,
    gsi,
    lsi,
)
from .planner import Limits, QueryPlan
from .transaction import TransactionRead, TransactionWrite
from .update_builder import ItemUpdater

if TYPE_CHECKING:
    from .connection import create_boto3_config, create_client
    from .schema import build_create_table_request, create_table, delete_table, describe_table
    from .session import Session

__version__ = "0.1.0"


def __getattr__(name: str) -> Any:
    if name == "Session":
        from .session import Session

        return Session
    if name in {"create_boto3_config", "create_client"}:
        from . import connection

        return getattr(connection, name)
    if name in {"build_create_table_request", "create_table", "delete_table", "describe_table"}:
        from . import schema

        return getattr(schema, name)
    raise AttributeError(name)


__all__ = [
    "ABORT",
    "AttributeDefinition",
    "AwsError",
    "BatchRetryExceededError",
    "Chain",
    "Collection",
    "Condition",
    "ConditionFailedError",
    "Config",
    "Criteria",
    "Cursor",
    "CustomType",
    "Document",
    "DocumentDestroyedError",
    "DocumentNotValid",
    "DynadocError",
    "IndexDefinition",
    "IndexSpec",
    "InvalidQuery",
    "ItemUpdater",
    "Limits",
    "MissingHashKey",
    "MissingRangeKey",
    "ModelDefinitionError",
    "ModelSchema",
    "NotFoundError",
    "Page",
    "Projection",
    "QueryPlan",
    "RecordNotDestroyed",
    "RecordNotSaved",
    "RecordNotUnique",
    "ResultEnumerator",
    "Rollback",
    "SchemaRegistry",
    "Session",
    "StaleObjectError",
    "TableNotFoundError",
    "TransactionCanceledError",
    "TransactionError",
    "TransactionRead",
    "TransactionWrite",
    "UnknownAttribute",
    "UnsupportedKeyType",
    "ValidationError",
    "__version__",
    "after",
    "before",
    "build_create_table_request",
    "create_boto3_config",
    "create_client",
    "create_table",
    "decode_cursor",
    "delete_table",
    "describe_table",
    "dynadoc_field",
    "encode_cursor",
    "gsi",
    "lsi",
    "validates",
]
