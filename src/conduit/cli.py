"""Root CLI group and version flag."""

import click

from conduit import __version__
from conduit.commands.init import init
from conduit.commands.serve import serve
from conduit.commands.show_config import show_config


@click.group()
@click.version_option(version=__version__, prog_name="conduit")
def cli() -> None:
    """Conduit: OpenAI-compatible API for the local Claude CLI."""


cli.add_command(init)
cli.add_command(serve)
cli.add_command(show_config)
