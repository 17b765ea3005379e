"""conduit serve — run the HTTP API."""

from __future__ import annotations

import logging
from pathlib import Path

import click
import uvicorn

from conduit.config.parser import ConfigError, config_warnings, load_config
from conduit.http.app import create_app

_LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


@click.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to conduit.yaml (default: ./conduit.yaml if present).",
)
@click.option("--host", default=None, help="Override server.host.")
@click.option("--port", type=int, default=None, help="Override server.port.")
def serve(config_path: Path | None, host: str | None, port: int | None) -> None:
    """Start the OpenAI-compatible API server."""
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    if host is not None:
        config.server.host = host
    if port is not None:
        config.server.port = port

    level = config.server.log_level
    logging.basicConfig(level=level.upper(), format=_LOG_FORMAT)

    for warning in config_warnings(config):
        click.echo(f"Warning: {warning}", err=True)

    auth = "on" if config.server.api_key else "off"
    click.echo(
        f"conduit listening on http://{config.server.host}:{config.server.port} "
        f"(cli: {config.cli.binary}, auth: {auth})"
    )
    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_level=level,
    )
