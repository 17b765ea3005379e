"""Configuration models and parser for conduit.yaml."""

from conduit.config.models import (
    AgentConfig,
    CLIConfig,
    ConduitConfig,
    PoolConfig,
    PTYConfig,
    ServerConfig,
    SessionConfig,
)
from conduit.config.parser import ConfigError, config_warnings, load_config

__all__ = [
    "AgentConfig",
    "CLIConfig",
    "ConduitConfig",
    "ConfigError",
    "PTYConfig",
    "PoolConfig",
    "ServerConfig",
    "SessionConfig",
    "config_warnings",
    "load_config",
]
