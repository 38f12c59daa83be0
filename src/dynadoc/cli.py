"""Administrative commands for dynadoc models."""

from __future__ import annotations

import importlib
import inspect
import logging
import sys

import click
from botocore.exceptions import BotoCoreError

from .config import Config
from .connection import create_client
from .document import Document
from .errors import DynadocError
from .session import Session

logger = logging.getLogger(__name__)

_LOG_LEVELS = {0: logging.WARNING, 1: logging.INFO}


def _setup_logging(verbose: int) -> None:
    logging.basicConfig(
        level=_LOG_LEVELS.get(verbose, logging.DEBUG),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _models_from(module_names: tuple[str, ...]) -> list[type[Document]]:
    models: list[type[Document]] = []
    for module_name in module_names:
        try:
            module = importlib.import_module(module_name)
        except ImportError as err:
            raise click.BadParameter(f"cannot import {module_name}: {err}", param_hint="--models") from err
        for _, value in inspect.getmembers(module, inspect.isclass):
            if issubclass(value, Document) and value is not Document and value.__module__ == module.__name__:
                models.append(value)
    return models


@click.group()
@click.version_option(version="0.1.0")
@click.option("--region", envvar="AWS_REGION", help="AWS region")
@click.option("--endpoint-url", envvar="DYNAMODB_ENDPOINT", help="DynamoDB endpoint (e.g. DynamoDB Local)")
@click.option("--namespace", default="dynadoc", show_default=True, help="Table name prefix")
@click.option("--verbose", "-v", count=True, help="Increase verbosity (-v INFO, -vv DEBUG)")
@click.pass_context
def main(ctx: click.Context, region: str | None, endpoint_url: str | None, namespace: str, verbose: int) -> None:
    """Manage the DynamoDB tables behind dynadoc models."""

    _setup_logging(verbose)
    ctx.obj = Config(region=region, endpoint_url=endpoint_url, namespace=namespace or None)


@main.command("create-tables")
@click.option("--models", "module_names", multiple=True, required=True, help="Module declaring Document classes")
@click.pass_obj
def create_tables_command(config: Config, module_names: tuple[str, ...]) -> None:
    """Create the table of every model declared in the given modules.

    \b
    Examples:
        dynadoc create-tables --models myapp.models
        dynadoc --endpoint-url http://localhost:8000 create-tables --models myapp.models
    """

    models = _models_from(module_names)
    if not models:
        raise click.UsageError(f"no Document subclasses found in: {', '.join(module_names)}")

    try:
        session = Session(config=config, client=create_client(config), models=models)
        created = session.create_tables()
    except (DynadocError, BotoCoreError) as err:
        logger.debug("create-tables failed", exc_info=True)
        click.echo(f"error: {err}", err=True)
        sys.exit(1)

    for name in created:
        click.echo(f"created {name}")
    if not created:
        click.echo("all tables already exist")


@main.command("ping")
@click.pass_obj
def ping_command(config: Config) -> None:
    """Check that DynamoDB is reachable with the current settings."""

    try:
        Session(config=config, client=create_client(config)).ping()
    except (DynadocError, BotoCoreError) as err:
        logger.debug("ping failed", exc_info=True)
        click.echo(f"error: {err}", err=True)
        sys.exit(1)
    click.echo("ok")


if __name__ == "__main__":
    main()
