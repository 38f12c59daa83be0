from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

from botocore.exceptions import ClientError

from .aws_errors import error_code, map_client_error
from .config import Config
from .dumping import key_type
from .errors import ValidationError
from .model import ModelSchema

logger = logging.getLogger(__name__)


def create_table(
    schema: ModelSchema,
    *,
    client: Any,
    table_name: str,
    config: Config,
    wait_for_active: bool = True,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Creates the table of ``schema``; returns False when it already existed."""

    req = build_create_table_request(schema, table_name=table_name, config=config)

    created = True
    try:
        client.create_table(**req)
    except ClientError as err:
        if error_code(err) != "ResourceInUseException":
            raise map_client_error(err) from err
        created = False

    if wait_for_active:
        _wait_for_table_active(
            client,
            table_name,
            timeout_seconds=config.table_wait_timeout,
            poll_interval_seconds=config.table_poll_interval,
            sleep=sleep,
        )

    if created:
        logger.info("created table %s for %s", table_name, schema.model_name)
        if schema.ttl_attribute is not None:
            ttl_name = schema.attribute(schema.ttl_attribute).attribute_name
            try:
                client.update_time_to_live(
                    TableName=table_name,
                    TimeToLiveSpecification={"Enabled": True, "AttributeName": ttl_name},
                )
            except ClientError as err:
                raise map_client_error(err) from err
    return created


def delete_table(
    *,
    client: Any,
    table_name: str,
    config: Config,
    wait_for_delete: bool = True,
    ignore_missing: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    try:
        client.delete_table(TableName=table_name)
    except ClientError as err:
        if ignore_missing and error_code(err) == "ResourceNotFoundException":
            return
        raise map_client_error(err) from err

    if wait_for_delete:
        _wait_for_table_deleted(
            client,
            table_name,
            timeout_seconds=config.table_wait_timeout,
            poll_interval_seconds=config.table_poll_interval,
            sleep=sleep,
        )


def describe_table(*, client: Any, table_name: str) -> dict[str, Any]:
    try:
        return dict(client.describe_table(TableName=table_name))
    except ClientError as err:
        raise map_client_error(err) from err


def list_tables(*, client: Any) -> list[str]:
    names: list[str] = []
    req: dict[str, Any] = {}
    while True:
        try:
            resp = client.list_tables(**req)
        except ClientError as err:
            raise map_client_error(err) from err
        names.extend(resp.get("TableNames") or [])
        last = resp.get("LastEvaluatedTableName")
        if not last:
            return names
        req = {"ExclusiveStartTableName": last}


def build_create_table_request(schema: ModelSchema, *, table_name: str, config: Config) -> dict[str, Any]:
    options = config.dump_options()
    provisioned = config.billing_mode == "PROVISIONED"

    def attribute_name(python_name: str) -> str:
        return schema.attribute(python_name).attribute_name

    def throughput(read: int | None, write: int | None) -> dict[str, int]:
        return {
            "ReadCapacityUnits": read or schema.read_capacity or config.read_capacity,
            "WriteCapacityUnits": write or schema.write_capacity or config.write_capacity,
        }

    def key_schema(hash_key: str, range_key: str | None) -> list[dict[str, str]]:
        keys = [{"AttributeName": attribute_name(hash_key), "KeyType": "HASH"}]
        if range_key is not None:
            keys.append({"AttributeName": attribute_name(range_key), "KeyType": "RANGE"})
        return keys

    attr_types: dict[str, str] = {}

    def declare(python_name: str | None) -> None:
        if python_name is not None:
            attr_types[attribute_name(python_name)] = key_type(schema.attribute(python_name), options)

    declare(schema.hash_key)
    declare(schema.range_key)

    gsis: list[dict[str, Any]] = []
    lsis: list[dict[str, Any]] = []
    for idx in schema.indexes:
        declare(idx.hash_key)
        declare(idx.range_key)

        proj: dict[str, Any] = {"ProjectionType": idx.projection.type}
        if idx.projection.type == "INCLUDE" and idx.projection.fields:
            proj["NonKeyAttributes"] = [attribute_name(name) for name in idx.projection.fields]

        definition: dict[str, Any] = {
            "IndexName": idx.name,
            "KeySchema": key_schema(idx.hash_key, idx.range_key),
            "Projection": proj,
        }
        if idx.type == "GSI":
            if provisioned:
                definition["ProvisionedThroughput"] = throughput(idx.read_capacity, idx.write_capacity)
            gsis.append(definition)
        else:
            lsis.append(definition)

    req: dict[str, Any] = {
        "TableName": table_name,
        "BillingMode": config.billing_mode,
        "KeySchema": key_schema(schema.hash_key, schema.range_key),
        "AttributeDefinitions": [
            {"AttributeName": name, "AttributeType": attr_types[name]} for name in sorted(attr_types)
        ],
    }
    if provisioned:
        req["ProvisionedThroughput"] = throughput(None, None)
    if gsis:
        req["GlobalSecondaryIndexes"] = gsis
    if lsis:
        req["LocalSecondaryIndexes"] = lsis
    return req


def _wait_for_table_active(
    client: Any,
    table_name: str,
    *,
    timeout_seconds: float,
    poll_interval_seconds: float,
    sleep: Callable[[float], None],
) -> None:
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        try:
            resp = client.describe_table(TableName=table_name)
        except ClientError as err:
            if error_code(err) != "ResourceNotFoundException":
                raise map_client_error(err) from err
            resp = {}

        if str(resp.get("Table", {}).get("TableStatus", "")) == "ACTIVE":
            return
        sleep(poll_interval_seconds)

    raise ValidationError(f"timed out waiting for table ACTIVE: {table_name}")


def _wait_for_table_deleted(
    client: Any,
    table_name: str,
    *,
    timeout_seconds: float,
    poll_interval_seconds: float,
    sleep: Callable[[float], None],
) -> None:
    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        try:
            client.describe_table(TableName=table_name)
        except ClientError as err:
            if error_code(err) == "ResourceNotFoundException":
                return
            raise map_client_error(err) from err
        sleep(poll_interval_seconds)

    raise ValidationError(f"timed out waiting for table deletion: {table_name}")
