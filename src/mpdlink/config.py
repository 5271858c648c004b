"""Configuration management for mpdlink."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

from .protocol.messages import DEFAULT_PORT


@dataclass
class ConnectionConfig:
    """Where and how to reach the daemon."""

    host: str = "localhost"
    port: int = DEFAULT_PORT
    socket: str = ""
    url: str = ""
    timeout: float = 0.0


@dataclass
class LoggingConfig:
    """Logging settings for the command-line tool."""

    level: str = "warning"
    file: str = ""


@dataclass
class Config:
    """Full mpdlink configuration."""

    connection: ConnectionConfig = field(default_factory=ConnectionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def get_config_dir() -> Path:
    """Get the mpdlink config directory."""
    if xdg_config := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_config) / "mpdlink"
    return Path.home() / ".config" / "mpdlink"


def get_config_file() -> Path:
    return get_config_dir() / "config.toml"


def load_config(path: Path | None = None) -> Config:
    """Load configuration from file, then apply environment overrides."""
    config_file = path or get_config_file()

    if config_file.exists():
        with open(config_file, "rb") as f:
            data = tomllib.load(f)
        config = Config(
            connection=ConnectionConfig(**data.get("connection", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )
    else:
        config = Config()

    apply_environment(config.connection)
    return config


def apply_environment(connection: ConnectionConfig) -> None:
    """Apply ``MPD_HOST`` and ``MPD_PORT``."""
    if host := os.environ.get("MPD_HOST"):
        if host.startswith("/"):
            connection.socket = host
        else:
            connection.host = host
            connection.socket = ""

    if port := os.environ.get("MPD_PORT"):
        try:
            connection.port = int(port)
        except ValueError:
            raise ValueError(f"Invalid MPD_PORT: {port}") from None
