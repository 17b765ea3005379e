"""conduit init — scaffold a conduit.yaml in the current directory."""

from __future__ import annotations

from pathlib import Path

import click

CONFIG_FILENAME = "conduit.yaml"
ENV_EXAMPLE_FILENAME = ".env.example"

TEMPLATE_YAML = """\
# conduit configuration
# Every setting is optional; the values below are the defaults.
# Durations are in seconds.

cli:
  binary: claude          # path to the Claude CLI (env: CLAUDE_BIN)
  default_model: sonnet   # used when a request names no model

pool:
  max_processes: 10       # live CLI children, all kinds (env: MAX_PROCESSES)
  max_pty_processes: 5    # live interactive sessions (env: MAX_PTY_PROCESSES)
  grace_period: 5         # SIGTERM -> SIGKILL delay
  shutdown_timeout: 10    # how long shutdown waits for children

pty:
  columns: 80
  rows: 24
  term: xterm-color

agent:
  prompt_timeout: 60      # wait for the CLI input prompt
  stream_timeout: 45      # max length of one streamed reply
  stream_check_interval: 0.1
  heartbeat_interval: 15  # SSE keep-alive
  prompt_log_interval: 5
  stability_threshold: 0.95
  stable_count: 3

session:
  max_age: 86400          # evict sessions idle this long
  cleanup_interval: 3600
  screen_history: 10

server:
  host: 0.0.0.0           # env: HOST
  port: 3912              # env: PORT
  # api_key: change-me    # env: API_KEY; auth is off when unset
  log_level: info
"""

TEMPLATE_ENV_EXAMPLE = """\
# Environment overrides for conduit.yaml.
# Copy this file to .env next to conduit.yaml.
#
# Any setting can also be overridden as CONDUIT_<SECTION>_<FIELD>,
# e.g. CONDUIT_AGENT_PROMPT_TIMEOUT=90

API_KEY=
CLAUDE_BIN=claude
PORT=3912
"""


@click.command()
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite existing conduit.yaml if it exists.",
)
def init(force: bool) -> None:
    """Write a commented conduit.yaml in the current directory."""
    cwd = Path.cwd()
    config_path = cwd / CONFIG_FILENAME
    env_example_path = cwd / ENV_EXAMPLE_FILENAME

    if config_path.exists() and not force:
        raise click.ClickException(
            f"{CONFIG_FILENAME} already exists. Use --force to overwrite."
        )

    try:
        config_path.write_text(TEMPLATE_YAML, encoding="utf-8")
    except OSError as exc:
        raise click.ClickException(f"Cannot write {CONFIG_FILENAME}: {exc}") from exc
    click.echo(f"  Created {CONFIG_FILENAME}")

    if not env_example_path.exists() or force:
        try:
            env_example_path.write_text(TEMPLATE_ENV_EXAMPLE, encoding="utf-8")
        except OSError as exc:
            raise click.ClickException(
                f"Cannot write {ENV_EXAMPLE_FILENAME}: {exc}"
            ) from exc
        click.echo(f"  Created {ENV_EXAMPLE_FILENAME}")
    else:
        click.echo(f"  Skipped {ENV_EXAMPLE_FILENAME} (already exists)")

    click.echo()
    click.echo("Next steps:")
    click.echo(f"  1. Review {CONFIG_FILENAME} (set server.api_key for shared hosts)")
    click.echo("  2. Make sure `claude` is installed and logged in")
    click.echo("  3. Run `conduit serve`")
