"""Tests for `conduit init` command."""

from __future__ import annotations

from io import StringIO
from pathlib import Path

import yaml
from click.testing import CliRunner
from dotenv import dotenv_values

from conduit.cli import cli
from conduit.commands.init import (
    CONFIG_FILENAME,
    ENV_EXAMPLE_FILENAME,
    TEMPLATE_ENV_EXAMPLE,
    TEMPLATE_YAML,
)
from conduit.config.models import ConduitConfig


class TestInitCreatesFiles:
    """conduit init creates the expected files."""

    def test_creates_conduit_yaml(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(cli, ["init"])
            assert result.exit_code == 0
            assert Path(CONFIG_FILENAME).is_file()

    def test_creates_env_example(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(cli, ["init"])
            assert result.exit_code == 0
            assert Path(ENV_EXAMPLE_FILENAME).is_file()

    def test_output_mentions_created_files(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(cli, ["init"])
            assert f"Created {CONFIG_FILENAME}" in result.output
            assert f"Created {ENV_EXAMPLE_FILENAME}" in result.output
            assert "conduit serve" in result.output


class TestInitExistingFiles:
    """conduit init refuses to clobber without --force."""

    def test_refuses_existing_config(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            Path(CONFIG_FILENAME).write_text("server:\n  port: 1\n")
            result = runner.invoke(cli, ["init"])
            assert result.exit_code == 1
            assert "already exists" in result.output
            assert Path(CONFIG_FILENAME).read_text() == "server:\n  port: 1\n"

    def test_force_overwrites(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            Path(CONFIG_FILENAME).write_text("server:\n  port: 1\n")
            result = runner.invoke(cli, ["init", "--force"])
            assert result.exit_code == 0
            assert Path(CONFIG_FILENAME).read_text() == TEMPLATE_YAML

    def test_keeps_existing_env_example(self, tmp_path: Path) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            Path(ENV_EXAMPLE_FILENAME).write_text("MINE=1\n")
            result = runner.invoke(cli, ["init"])
            assert result.exit_code == 0
            assert f"Skipped {ENV_EXAMPLE_FILENAME}" in result.output
            assert Path(ENV_EXAMPLE_FILENAME).read_text() == "MINE=1\n"


class TestGeneratedConfigIsValid:
    """The generated conduit.yaml must parse and validate correctly."""

    def test_yaml_parses(self) -> None:
        data = yaml.safe_load(TEMPLATE_YAML)
        assert isinstance(data, dict)

    def test_template_matches_defaults(self) -> None:
        config = ConduitConfig.model_validate(yaml.safe_load(TEMPLATE_YAML))
        assert config == ConduitConfig()

    def test_env_example_names_known_variables(self) -> None:
        values = dotenv_values(stream=StringIO(TEMPLATE_ENV_EXAMPLE))
        assert set(values) == {"API_KEY", "CLAUDE_BIN", "PORT"}
