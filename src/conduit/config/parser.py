"""Load, validate, and resolve conduit.yaml configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from conduit.config.models import ConduitConfig

DEFAULT_CONFIG_NAME = "conduit.yaml"

#: Environment variables inherited from the original deployment scripts.
_ENV_ALIASES: dict[str, tuple[str, str]] = {
    "CLAUDE_BIN": ("cli", "binary"),
    "API_KEY": ("server", "api_key"),
    "HOST": ("server", "host"),
    "PORT": ("server", "port"),
    "LOG_LEVEL": ("server", "log_level"),
    "MAX_PROCESSES": ("pool", "max_processes"),
    "MAX_PTY_PROCESSES": ("pool", "max_pty_processes"),
}

#: Prefix for the generic ``CONDUIT_<SECTION>_<FIELD>`` overrides.
_ENV_PREFIX = "CONDUIT_"


class ConfigError(Exception):
    """User-facing configuration error."""


def load_config(path: Path | None = None) -> ConduitConfig:
    """Load and validate configuration.

    Args:
        path: Explicit config file path. If None, uses conduit.yaml in the
              current directory when present and built-in defaults otherwise.

    Returns:
        A validated ConduitConfig instance.

    Raises:
        ConfigError: On missing explicit file, bad YAML, or validation failure.
    """
    config_path = _resolve_path(path)
    if config_path is None:
        raw: dict[str, Any] = {}
        _load_env(Path.cwd())
    else:
        raw = _read_yaml(config_path)
        _load_env(config_path.parent)
    _apply_env_overrides(raw, os.environ)
    return _validate(raw)


def config_warnings(config: ConduitConfig) -> list[str]:
    """Return advisory messages for settings that are legal but unwise."""
    warnings: list[str] = []
    agent = config.agent
    if agent.prompt_timeout < 10:
        warnings.append(
            f"agent.prompt_timeout is {agent.prompt_timeout}s; the CLI often "
            "needs more than 10s to start"
        )
    if agent.stream_timeout < 15:
        warnings.append(
            f"agent.stream_timeout is {agent.stream_timeout}s; long replies "
            "will be cut off"
        )
    if not 0.8 <= agent.stability_threshold <= 1.0:
        warnings.append(
            f"agent.stability_threshold is {agent.stability_threshold}; values "
            "outside 0.8-1.0 tend to end replies early or never"
        )
    if config.pool.max_processes > 20:
        warnings.append(
            f"pool.max_processes is {config.pool.max_processes}; each CLI child "
            "is a full Node.js process"
        )
    return warnings


def _resolve_path(path: Path | None) -> Path | None:
    if path is not None:
        resolved = Path(path)
        if not resolved.is_file():
            msg = f"Config file not found: {resolved}"
            raise ConfigError(msg)
        return resolved

    default = Path.cwd() / DEFAULT_CONFIG_NAME
    if not default.is_file():
        return None
    return default


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read config file: {exc}"
        raise ConfigError(msg) from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        detail = ""
        if hasattr(exc, "problem_mark") and exc.problem_mark is not None:
            mark = exc.problem_mark
            detail = f" (line {mark.line + 1}, column {mark.column + 1})"
        msg = f"Invalid YAML in {path.name}{detail}"
        raise ConfigError(msg) from exc

    # An empty file is the same as all defaults.
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
        raise ConfigError(msg)

    return data


def _load_env(config_dir: Path) -> None:
    env_path = config_dir / ".env"
    if env_path.is_file():
        load_dotenv(env_path)


def _apply_env_overrides(raw: dict[str, Any], environ: Any) -> None:
    """Overlay environment variables onto the raw config mapping.

    Values stay strings; pydantic coerces them during validation.
    """
    for var, (section, field) in _ENV_ALIASES.items():
        value = environ.get(var)
        if value:
            _set_value(raw, section, field, value)

    for var, value in environ.items():
        if not var.startswith(_ENV_PREFIX) or not value:
            continue
        target = _match_override(var[len(_ENV_PREFIX):].lower())
        if target is not None:
            _set_value(raw, *target, value)


def _match_override(key: str) -> tuple[str, str] | None:
    for section, model in ConduitConfig.model_fields.items():
        prefix = f"{section}_"
        if not key.startswith(prefix):
            continue
        field = key[len(prefix):]
        section_type = model.annotation
        if isinstance(section_type, type) and field in section_type.model_fields:
            return section, field
    return None


def _set_value(raw: dict[str, Any], section: str, field: str, value: str) -> None:
    block = raw.setdefault(section, {})
    if not isinstance(block, dict):
        msg = f"Config section '{section}' must be a mapping"
        raise ConfigError(msg)
    block[field] = value


def _validate(raw: dict[str, Any]) -> ConduitConfig:
    try:
        return ConduitConfig.model_validate(raw)
    except ValidationError as exc:
        errors = exc.errors()
        parts: list[str] = []
        for err in errors:
            loc = " → ".join(str(s) for s in err["loc"]) or "(root)"
            msg = err["msg"]
            if "extra inputs are not permitted" in msg.lower():
                msg = "Unknown setting"
            elif "input should be" in msg.lower():
                msg = f"Invalid value: {msg}"
            parts.append(f"  {loc}: {msg}")
        joined = "\n".join(parts)
        msg = f"Config validation failed:\n{joined}"
        raise ConfigError(msg) from exc
