"""Runtime configuration read from environment variables.

Everything the outer surfaces need to start a session lives in one
frozen ``Config`` record:

    MEMFS_SNAPSHOT    path of the snapshot file (default ``filesystem_state.txt``)
    MEMFS_LOG_LEVEL   minimum level kept by the logger (default ``INFO``)
    MEMFS_WEB_PORT    port of the web terminal (default ``8080``)

The core never reads the environment itself; the REPL and the web app
load a ``Config`` and pass its values down.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from memfs.logging import LogLevel

DEFAULT_SNAPSHOT_PATH = Path("filesystem_state.txt")
DEFAULT_WEB_PORT = 8080

_MAX_PORT = 65535


class ConfigError(ValueError):
    """An environment variable holds an unusable value."""


@dataclass(frozen=True)
class Config:
    """Settings for one session."""

    snapshot_path: Path = DEFAULT_SNAPSHOT_PATH
    log_level: LogLevel = LogLevel.INFO
    web_port: int = DEFAULT_WEB_PORT


def _parse_level(raw: str) -> LogLevel:
    try:
        return LogLevel[raw.strip().upper()]
    except KeyError:
        names = ", ".join(level.name for level in LogLevel)
        msg = f"Invalid MEMFS_LOG_LEVEL '{raw}' (expected one of {names})"
        raise ConfigError(msg) from None


def _parse_port(raw: str) -> int:
    try:
        port = int(raw)
    except ValueError:
        msg = f"Invalid MEMFS_WEB_PORT '{raw}'"
        raise ConfigError(msg) from None
    if not 0 < port <= _MAX_PORT:
        msg = f"MEMFS_WEB_PORT out of range: {port}"
        raise ConfigError(msg)
    return port


def load_config(environ: Mapping[str, str] | None = None) -> Config:
    """Build a ``Config`` from *environ* (``os.environ`` by default).

    Unset or empty variables fall back to their defaults.

    Raises:
        ConfigError: If a variable is set to an invalid value.

    """
    env = os.environ if environ is None else environ
    snapshot = env.get("MEMFS_SNAPSHOT") or ""
    level = env.get("MEMFS_LOG_LEVEL") or ""
    port = env.get("MEMFS_WEB_PORT") or ""
    return Config(
        snapshot_path=Path(snapshot) if snapshot else DEFAULT_SNAPSHOT_PATH,
        log_level=_parse_level(level) if level else LogLevel.INFO,
        web_port=_parse_port(port) if port else DEFAULT_WEB_PORT,
    )
