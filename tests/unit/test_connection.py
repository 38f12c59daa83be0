from __future__ import annotations

from typing import Any

from dynadoc import Config, create_boto3_config, create_client


class _RecordingSession:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def client(self, service: str, **kwargs: Any) -> str:
        self.calls.append((service, kwargs))
        return "client"


def test_boto3_config_uses_timeouts_and_adaptive_retries() -> None:
    boto_config = create_boto3_config(Config(connect_timeout=2.0, read_timeout=5.0, max_attempts=7))

    assert boto_config.connect_timeout == 2.0
    assert boto_config.read_timeout == 5.0
    assert boto_config.retries == {"max_attempts": 7, "mode": "adaptive"}


def test_create_client_passes_endpoint_and_static_credentials() -> None:
    session = _RecordingSession()
    config = Config(region="us-east-1", endpoint_url="http://localhost:8000", access_key="AK", secret_key="SK")

    assert create_client(config, session=session) == "client"
    ((service, kwargs),) = session.calls
    assert service == "dynamodb"
    assert kwargs["region_name"] == "us-east-1"
    assert kwargs["endpoint_url"] == "http://localhost:8000"
    assert kwargs["aws_access_key_id"] == "AK"
    assert kwargs["aws_secret_access_key"] == "SK"


def test_create_client_defaults_to_the_credential_chain() -> None:
    session = _RecordingSession()
    create_client(Config(region="us-east-1", access_key="AK"), session=session)

    ((_, kwargs),) = session.calls
    assert "endpoint_url" not in kwargs
    assert "aws_access_key_id" not in kwargs
