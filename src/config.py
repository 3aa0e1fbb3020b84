"""Configuration loading: YAML file, .env and environment overrides."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from const import (
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_DATABASE_URL,
    DEFAULT_JAIL_CONFIG,
    DEFAULT_JAIL_NAME,
    DEFAULT_SERVICE_NAME,
    DEFAULT_STATUS_CACHE_TTL,
    DEFAULT_STATUS_TIMEOUT,
    SYNC_SCRIPT_ENV,
    SYNC_SCRIPT_SEARCH_PATHS,
)
from utils.logger import get_logger

logger = get_logger("config")

SYNC_STRATEGIES = ("patch", "script")


class ConfigError(ValueError):
    """Raised when the configuration file holds an invalid value."""


@dataclass
class JailSettings:
    """Everything needed to talk to one fail2ban jail."""

    name: str = DEFAULT_JAIL_NAME
    privileged_exec: Optional[str] = "sudo"
    client: str = "fail2ban-client"
    systemctl: str = "systemctl"
    service: str = DEFAULT_SERVICE_NAME
    config_path: str = DEFAULT_JAIL_CONFIG
    status_timeout: float = DEFAULT_STATUS_TIMEOUT
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT

    @property
    def anchor(self) -> str:
        """Section header after which a missing ignoreip line is inserted."""
        return f"[{self.name}]"

    @property
    def restart_command(self) -> Tuple[str, ...]:
        return (self.systemctl, "restart", self.service)


@dataclass
class SyncSettings:
    """Whitelist reconciliation settings."""

    strategy: str = "patch"
    comment_lines: bool = True
    anchor: Optional[str] = None
    script_path: Optional[str] = None
    script_search_paths: Tuple[str, ...] = SYNC_SCRIPT_SEARCH_PATHS
    # Defaults to "<jail config>.lock"; every process syncing one jail must agree on it
    lock_path: Optional[str] = None


@dataclass
class DatabaseSettings:
    """Whitelist database settings.

    ``name``/``user``/``password`` are only handed to the external sync
    script; the application itself connects through ``url``.
    """

    url: str = DEFAULT_DATABASE_URL
    name: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)


@dataclass
class DashboardSettings:
    refresh_interval: float = 10.0
    status_cache_ttl: float = DEFAULT_STATUS_CACHE_TTL


@dataclass
class AppConfig:
    jail: JailSettings = field(default_factory=JailSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    dashboard: DashboardSettings = field(default_factory=DashboardSettings)


def _section(raw: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Section '{key}' must be a mapping")
    return value


def _pick(data: Dict[str, Any], cls, **overrides):
    """Build a settings dataclass from the keys it knows about."""
    known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
    unknown = set(data) - set(known)
    if unknown:
        logger.warning(f"Ignoring unknown {cls.__name__} keys: {sorted(unknown)}")
    known.update({k: v for k, v in overrides.items() if v is not None})
    return cls(**known)


def load_raw_config(config_path: str) -> Dict[str, Any]:
    """Read the YAML file, returning an empty dict if it does not exist."""
    path = Path(config_path)
    config = {}
    if path.exists():
        with open(path, 'r') as f:
            config = yaml.safe_load(f) or {}
    if not isinstance(config, dict):
        raise ConfigError(f"{config_path}: top level must be a mapping")
    return config


def load_config(config_path: str) -> AppConfig:
    """
    Load application config from YAML and apply environment overrides.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Parsed AppConfig.

    Raises:
        ConfigError: If a value is invalid.
    """
    raw = load_raw_config(config_path)
    env = os.environ

    jail = _pick(
        _section(raw, "jail"),
        JailSettings,
        name=env.get("SBCGUARD_JAIL_NAME"),
        config_path=env.get("SBCGUARD_JAIL_CONFIG"),
    )

    sync_data = dict(_section(raw, "sync"))
    if "script_search_paths" in sync_data:
        sync_data["script_search_paths"] = tuple(sync_data["script_search_paths"] or ())
    sync = _pick(
        sync_data,
        SyncSettings,
        strategy=env.get("SBCGUARD_SYNC_STRATEGY"),
        script_path=env.get(SYNC_SCRIPT_ENV),
    )
    if sync.strategy not in SYNC_STRATEGIES:
        raise ConfigError(f"sync.strategy must be one of {SYNC_STRATEGIES}, got '{sync.strategy}'")

    database = _pick(
        _section(raw, "database"),
        DatabaseSettings,
        url=env.get("DATABASE_URL"),
        name=env.get("DB_NAME"),
        user=env.get("DB_USER"),
        password=env.get("DB_PASS"),
    )

    dashboard = _pick(_section(raw, "dashboard"), DashboardSettings)

    for label, value in (
        ("jail.status_timeout", jail.status_timeout),
        ("jail.command_timeout", jail.command_timeout),
        ("dashboard.refresh_interval", dashboard.refresh_interval),
    ):
        if not isinstance(value, (int, float)) or value <= 0:
            raise ConfigError(f"{label} must be a positive number")

    return AppConfig(jail=jail, sync=sync, database=database, dashboard=dashboard)
