"""Pydantic v2 models for conduit.yaml configuration.

All durations are in seconds.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CLIConfig(BaseModel):
    """How to invoke the external Claude CLI."""

    model_config = ConfigDict(extra="forbid")

    binary: str = Field(
        default="claude",
        description="Executable name or path of the CLI",
    )
    default_model: str = Field(
        default="sonnet",
        description="Model alias used when a request does not name one",
    )


class PoolConfig(BaseModel):
    """Limits and termination timing for CLI child processes."""

    model_config = ConfigDict(extra="forbid")

    max_processes: int = Field(
        default=10,
        ge=1,
        description="Global cap on live children (stdio and pty combined)",
    )
    max_pty_processes: int = Field(
        default=5,
        ge=1,
        description="Cap on live interactive (pty) children",
    )
    grace_period: float = Field(
        default=5.0,
        gt=0,
        description="Delay between the graceful signal and the force-kill",
    )
    shutdown_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Overall budget for children to exit during shutdown",
    )


class PTYConfig(BaseModel):
    """Pseudo-terminal geometry for interactive sessions."""

    model_config = ConfigDict(extra="forbid")

    columns: int = Field(default=80, ge=20, description="Terminal width")
    rows: int = Field(default=24, ge=5, description="Terminal height")
    term: str = Field(default="xterm-color", description="TERM value")


class AgentConfig(BaseModel):
    """Timing and screen-analysis knobs for interactive sessions."""

    model_config = ConfigDict(extra="forbid")

    prompt_timeout: float = Field(
        default=60.0,
        gt=0,
        description="How long to wait for the CLI input prompt",
    )
    stream_timeout: float = Field(
        default=45.0,
        gt=0,
        description="Ceiling on one streamed reply before warning + done",
    )
    stream_check_interval: float = Field(
        default=0.1,
        gt=0,
        description="Screen analysis tick",
    )
    heartbeat_interval: float = Field(
        default=15.0,
        gt=0,
        description="Idle gap after which an SSE keep-alive is sent",
    )
    prompt_log_interval: float = Field(
        default=5.0,
        gt=0,
        description="Progress log cadence while waiting for the prompt",
    )
    stability_threshold: float = Field(
        default=0.95,
        ge=0.0,
        le=1.0,
        description="Line-set similarity at which two screens count as stable",
    )
    stable_count: int = Field(
        default=3,
        ge=1,
        description="Consecutive stable ticks required to finish a reply",
    )


class SessionConfig(BaseModel):
    """Session retention."""

    model_config = ConfigDict(extra="forbid")

    max_age: float = Field(
        default=86400.0,
        gt=0,
        description="Idle age after which a session is evicted",
    )
    cleanup_interval: float = Field(
        default=3600.0,
        gt=0,
        description="Eviction scan cadence",
    )
    screen_history: int = Field(
        default=10,
        ge=1,
        description="Snapshots kept per session",
    )


class ServerConfig(BaseModel):
    """HTTP listener settings."""

    model_config = ConfigDict(extra="forbid")

    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=3912, ge=1, le=65535, description="Bind port")
    api_key: str | None = Field(
        default=None,
        description="Shared secret; auth is disabled when unset",
    )
    log_level: Literal["debug", "info", "warning", "error", "critical"] = Field(
        default="info",
        description="Root log level",
    )


class ConduitConfig(BaseModel):
    """Top-level conduit.yaml configuration."""

    model_config = ConfigDict(extra="forbid")

    cli: CLIConfig = Field(default_factory=CLIConfig)
    pool: PoolConfig = Field(default_factory=PoolConfig)
    pty: PTYConfig = Field(default_factory=PTYConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @model_validator(mode="after")
    def _validate_pool_caps(self) -> ConduitConfig:
        if self.pool.max_pty_processes > self.pool.max_processes:
            msg = (
                f"pool.max_pty_processes ({self.pool.max_pty_processes}) "
                f"exceeds pool.max_processes ({self.pool.max_processes})"
            )
            raise ValueError(msg)
        return self
