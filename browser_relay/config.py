"""
Relay configuration.

Settings come from, in increasing priority: dataclass defaults, a YAML file,
``BROWSER_RELAY_*`` environment variables, and command-line flags applied by
the entry point.
"""

import logging
import os
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field, fields, replace
from pathlib import Path

import yaml

from . import __version__

logger = logging.getLogger(__name__)

ENV_PREFIX = "BROWSER_RELAY_"
LOG_LEVEL_ENV = "MCP_LOG_LEVEL"
LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class ConfigError(ValueError):
    """Raised when a configuration value is missing or malformed."""


@dataclass
class RelayConfig:
    """Configuration for the relay process."""
    host: str = "127.0.0.1"
    port: int = 3000
    mcp_path: str = "/mcp"
    ws_host: str = "127.0.0.1"
    ws_port: int = 8081
    ws_path: str = "/"
    action_timeout: float = 15.0
    reconnect_delay: float = 5.0
    ws_heartbeat: float = 30.0
    json_response: bool = False
    session_idle_timeout: float = 0.0
    sse_keepalive: float = 30.0
    snapshot_after_actions: bool = True
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])
    wait_for_extension: float = 0.0
    log_level: str = "INFO"
    server_name: str = "browser-relay"
    server_version: str = __version__

    def __post_init__(self):
        self.validate()

    def validate(self):
        """
        Check value ranges.

        Raises:
            ConfigError: On the first invalid value
        """
        for name in ("port", "ws_port"):
            value = getattr(self, name)
            if not 0 <= value <= 65535:
                raise ConfigError(f"{name} must be between 0 and 65535, got {value}")

        for name in ("action_timeout", "reconnect_delay"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")

        for name in ("ws_heartbeat", "session_idle_timeout", "sse_keepalive", "wait_for_extension"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative")

        for name in ("mcp_path", "ws_path"):
            if not getattr(self, name).startswith("/"):
                raise ConfigError(f"{name} must start with '/'")

        self.log_level = self.log_level.upper()
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RelayConfig":
        """Build a config from a mapping, ignoring unknown keys with a warning."""
        known = {f.name: f for f in fields(cls)}
        defaults = cls()
        values = {}

        for key, value in (data or {}).items():
            if key not in known:
                logger.warning(f"Ignoring unknown configuration key: {key}")
                continue
            values[key] = _coerce(key, value, getattr(defaults, key))

        return cls(**values)

    def with_overrides(self, **overrides: Any) -> "RelayConfig":
        """Return a copy with non-None overrides applied."""
        values = {key: _coerce(key, value, getattr(self, key)) for key, value in overrides.items() if value is not None}
        return replace(self, **values)


def _coerce(name: str, value: Any, template: Any) -> Any:
    try:
        if isinstance(template, bool):
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(f"not a boolean: {value!r}")
        if isinstance(template, int):
            return int(value)
        if isinstance(template, float):
            return float(value)
        if isinstance(template, list):
            if isinstance(value, str):
                return [item.strip() for item in value.split(",") if item.strip()]
            return [str(item) for item in value]
        return str(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}: {e}")


def env_overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Collect ``BROWSER_RELAY_<FIELD>`` variables plus ``MCP_LOG_LEVEL``."""
    environ = os.environ if environ is None else environ
    names = {f.name for f in fields(RelayConfig)}
    overrides = {}

    if environ.get(LOG_LEVEL_ENV):
        overrides["log_level"] = environ[LOG_LEVEL_ENV]

    for key, value in environ.items():
        if key.startswith(ENV_PREFIX):
            name = key[len(ENV_PREFIX):].lower()
            if name in names:
                overrides[name] = value

    return overrides


def load_config(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> RelayConfig:
    """
    Load configuration from a YAML file and the environment.

    Args:
        path: YAML file; a missing file falls back to defaults with a warning
        environ: Environment mapping, defaults to ``os.environ``

    Returns:
        The merged configuration

    Raises:
        ConfigError: If the file is malformed or a value is invalid
    """
    data: Dict[str, Any] = {}

    if path:
        config_file = Path(path)
        if not config_file.exists():
            logger.warning(f"Configuration file not found: {path}, using defaults")
        else:
            try:
                with open(config_file, "r") as f:
                    loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Failed to parse {path}: {e}")

            if not isinstance(loaded, dict):
                raise ConfigError(f"{path} must contain a mapping")
            data = loaded.get("relay", loaded)
            logger.info(f"Loaded configuration from {path}")

    data = dict(data)
    data.update(env_overrides(environ))
    return RelayConfig.from_dict(data)
