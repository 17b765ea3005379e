"""conduit config — print the resolved configuration."""

from __future__ import annotations

from pathlib import Path

import click
import yaml

from conduit.config.parser import ConfigError, config_warnings, load_config


@click.command("config")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to conduit.yaml (default: ./conduit.yaml if present).",
)
def show_config(config_path: Path | None) -> None:
    """Show the configuration after file, .env and environment overrides."""
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    data = config.model_dump(mode="json")
    if data["server"].get("api_key"):
        data["server"]["api_key"] = "********"
    click.echo(yaml.safe_dump(data, sort_keys=False).rstrip())

    for warning in config_warnings(config):
        click.echo(f"Warning: {warning}", err=True)
