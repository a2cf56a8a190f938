"""Configuration handling for taskgate."""

from __future__ import annotations

import copy
import logging
import os
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "TASKGATE_CONFIG"
TOKEN_ENV_VAR = "TASKGATE_TOKEN"
DEFAULT_CONFIG_PATH = "~/.taskgate/config.yml"

DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost",
    "http://127.0.0.1",
    "https://localhost",
    "https://127.0.0.1",
]

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

LOG_LEVEL_ALIASES = {
    "warn": "warning",
    "trace": "debug",
    "notice": "info",
    "fatal": "critical",
    "alert": "critical",
    "emergency": "critical",
}


def resolve_log_level(level: Any) -> Optional[int]:
    """Map a level name (aliases included) to a :mod:`logging` constant.

    Returns ``None`` for anything that is not a known level name.
    """

    if not isinstance(level, str) or not level.strip():
        return None
    normalized = level.strip().lower()
    return LOG_LEVELS.get(LOG_LEVEL_ALIASES.get(normalized, normalized))


class Config:
    """YAML-backed configuration file for taskgate."""

    DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
        "server": {
            "enabled": True,
            "host": "127.0.0.1",
            "port": 7777,
            "cors_enabled": True,
            "log_level": "info",
        },
        "security": {
            "auth_token": "",
            "instance_id": "",
            "allowed_origins": list(DEFAULT_ALLOWED_ORIGINS),
        },
        "sessions": {
            "idle_timeout": 3600,
            "sweep_interval": 60,
            "heartbeat_interval": 30,
        },
        "logs": {
            "capacity": 1000,
        },
        "tools": {
            "timeout": 30,
        },
    }

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration.

        Args:
            config_path: Path to the configuration file. Falls back to the
                ``TASKGATE_CONFIG`` environment variable, then
                ``~/.taskgate/config.yml``.
        """
        raw_path = config_path or os.getenv(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH
        self.config_path = os.path.expanduser(raw_path)
        self.config = copy.deepcopy(self.DEFAULT_CONFIG)
        self._load_config()

    def _load_config(self):
        """Load configuration from file."""
        if not os.path.exists(self.config_path):
            logger.warning("Configuration file not found at %s", self.config_path)
            logger.info("Using default configuration")
            return

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                user_config = yaml.safe_load(f)
                if user_config:
                    self._merge_config(user_config)
            logger.info("Loaded configuration from %s", self.config_path)
        except (OSError, yaml.YAMLError) as e:
            logger.error("Error loading configuration: %s", e)
            logger.info("Using default configuration")

    def _merge_config(self, user_config: Dict[str, Any]):
        """Merge user configuration section by section over the defaults."""
        for section, values in user_config.items():
            if section in self.config and isinstance(values, dict):
                self.config[section].update(values)
            else:
                self.config[section] = values

    def get(self, section: str, key: Optional[str] = None, default: Any = None) -> Any:
        """Get configuration value.

        Args:
            section: Configuration section
            key: Configuration key (optional, if None returns the entire section)
            default: Default value if the key is not found

        Returns:
            Configuration value or default
        """
        if section not in self.config:
            return default

        if key is None:
            return self.config[section]

        return self.config[section].get(key, default)

    def set(self, section: str, key: str, value: Any):
        """Set configuration value."""
        if section not in self.config:
            self.config[section] = {}

        self.config[section][key] = value

    def save(self) -> bool:
        """Save configuration to file."""
        try:
            directory = os.path.dirname(self.config_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

            with open(self.config_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(self.config, f, default_flow_style=False)
            logger.info("Saved configuration to %s", self.config_path)
            return True
        except OSError as e:
            logger.error("Error saving configuration: %s", e)
            return False


@dataclass
class ServerConfig:
    """Typed runtime settings consumed by the gateway and HTTP surface."""

    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 7777
    auth_token: str = ""
    cors_enabled: bool = True
    log_level: str = "info"
    instance_id: str = ""
    allowed_origins: List[str] = field(
        default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS)
    )
    session_idle_timeout: float = 3600.0
    session_sweep_interval: float = 60.0
    heartbeat_interval: float = 30.0
    tool_timeout: float = 30.0
    log_capacity: int = 1000

    @classmethod
    def from_config(cls, config: Config) -> "ServerConfig":
        """Build runtime settings from a loaded :class:`Config`."""

        token = os.getenv(TOKEN_ENV_VAR) or config.get("security", "auth_token", "")
        origins = config.get("security", "allowed_origins") or DEFAULT_ALLOWED_ORIGINS
        return cls(
            enabled=bool(config.get("server", "enabled", True)),
            host=str(config.get("server", "host", "127.0.0.1")),
            port=int(config.get("server", "port", 7777)),
            auth_token=str(token or ""),
            cors_enabled=bool(config.get("server", "cors_enabled", True)),
            log_level=str(config.get("server", "log_level", "info")),
            instance_id=str(config.get("security", "instance_id", "") or ""),
            allowed_origins=[str(origin) for origin in origins],
            session_idle_timeout=float(config.get("sessions", "idle_timeout", 3600)),
            session_sweep_interval=float(config.get("sessions", "sweep_interval", 60)),
            heartbeat_interval=float(config.get("sessions", "heartbeat_interval", 30)),
            tool_timeout=float(config.get("tools", "timeout", 30) or 0),
            log_capacity=int(config.get("logs", "capacity", 1000)),
        )

    def update(self, **changes: Any) -> "ServerConfig":
        """Return a copy with ``changes`` applied; unknown keys raise ``KeyError``."""

        known = {item.name for item in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise KeyError(f"Unknown server setting(s): {', '.join(unknown)}")
        return replace(self, **changes)

    @property
    def resolved_log_level(self) -> int:
        """Translate :attr:`log_level` into a :mod:`logging` level."""

        level = resolve_log_level(self.log_level)
        if level is None:
            logger.warning("Unknown log level %r; using info", self.log_level)
            return logging.INFO
        return level
