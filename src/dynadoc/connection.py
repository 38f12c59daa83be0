from __future__ import annotations

from typing import Any, cast

import boto3
from botocore.config import Config as BotoConfig

from .config import Config


def create_boto3_config(config: Config) -> BotoConfig:
    return BotoConfig(
        connect_timeout=config.connect_timeout,
        read_timeout=config.read_timeout,
        retries={"max_attempts": config.max_attempts, "mode": "adaptive"},
    )


def create_client(config: Config, *, session: Any | None = None) -> Any:
    """Builds the low-level DynamoDB client described by ``config``."""

    sess = session or boto3.session.Session(region_name=config.region)
    kwargs: dict[str, Any] = {"region_name": config.region, "config": create_boto3_config(config)}
    if config.endpoint_url:
        kwargs["endpoint_url"] = config.endpoint_url
    if config.access_key and config.secret_key:
        kwargs["aws_access_key_id"] = config.access_key
        kwargs["aws_secret_access_key"] = config.secret_key
    return cast(Any, sess).client("dynamodb", **kwargs)
