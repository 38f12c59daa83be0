from __future__ import annotations

import uuid
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from dynadoc.cli import main
from dynadoc.config import Config
from dynadoc.testkit import FakeDynamoDBClient, client_error

_MODELS = '''
from dynadoc import Document, dynadoc_field


class Widget(Document, table="widgets"):
    id: str | None = dynadoc_field(roles=["pk"])
'''


@pytest.fixture()
def fake_client(monkeypatch: pytest.MonkeyPatch) -> FakeDynamoDBClient:
    client = FakeDynamoDBClient()
    configs: list[Config] = []

    def fake_create_client(config: Config) -> Any:
        configs.append(config)
        return client

    monkeypatch.setattr("dynadoc.cli.create_client", fake_create_client)
    client.configs = configs  # type: ignore[attr-defined]
    return client


def write_module(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, source: str) -> str:
    name = f"cli_models_{uuid.uuid4().hex}"
    (tmp_path / f"{name}.py").write_text(source, encoding="utf-8")
    monkeypatch.syspath_prepend(str(tmp_path))
    return name


def test_create_tables_creates_missing_tables(
    fake_client: FakeDynamoDBClient, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    module = write_module(tmp_path, monkeypatch, _MODELS)
    fake_client.expect("list_tables", response={"TableNames": []})
    fake_client.expect("create_table", {"TableName": "app_widgets"})
    fake_client.expect("describe_table", response={"Table": {"TableStatus": "ACTIVE"}})

    result = CliRunner().invoke(
        main,
        ["--namespace", "app", "--endpoint-url", "http://localhost:8000", "create-tables", "--models", module],
    )

    assert result.exit_code == 0, result.output
    assert "created app_widgets" in result.output
    (config,) = fake_client.configs  # type: ignore[attr-defined]
    assert config.endpoint_url == "http://localhost:8000"
    fake_client.assert_no_pending()


def test_create_tables_reports_existing_tables(
    fake_client: FakeDynamoDBClient, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    module = write_module(tmp_path, monkeypatch, _MODELS)
    fake_client.expect("list_tables", response={"TableNames": ["dynadoc_widgets"]})

    result = CliRunner().invoke(main, ["create-tables", "--models", module])

    assert result.exit_code == 0, result.output
    assert "all tables already exist" in result.output


def test_create_tables_rejects_bad_modules(
    fake_client: FakeDynamoDBClient, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    result = CliRunner().invoke(main, ["create-tables", "--models", "no_such_module_here"])
    assert result.exit_code == 2
    assert "cannot import no_such_module_here" in result.output

    empty = write_module(tmp_path, monkeypatch, "VALUE = 1\n")
    result = CliRunner().invoke(main, ["create-tables", "--models", empty])
    assert result.exit_code == 2
    assert "no Document subclasses found" in result.output
    assert fake_client.calls == []


def test_backend_errors_exit_with_status_1(
    fake_client: FakeDynamoDBClient, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    module = write_module(tmp_path, monkeypatch, _MODELS)
    fake_client.expect("list_tables", error=client_error("AccessDeniedException", "not allowed"))

    result = CliRunner().invoke(main, ["create-tables", "--models", module])

    assert result.exit_code == 1
    assert "error: AccessDeniedException: not allowed" in result.output


def test_ping(fake_client: FakeDynamoDBClient) -> None:
    fake_client.expect("list_tables", {"Limit": 1}, response={})
    result = CliRunner().invoke(main, ["--region", "eu-west-1", "ping"])
    assert result.exit_code == 0, result.output
    assert result.output.strip() == "ok"

    fake_client.expect("list_tables", error=client_error("UnrecognizedClientException", "bad token"))
    result = CliRunner().invoke(main, ["ping"])
    assert result.exit_code == 1
    assert "error: UnrecognizedClientException: bad token" in result.output


def test_version() -> None:
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output
