#!/usr/bin/env python3
"""
Configuration for the SQL firewall whitelisting scripts.

Settings come from ``whitelist.yml`` (or the file given with ``--config``)
with a few environment variable overrides for CI:

    WHITELIST_LOG_DIR        directory holding the audit log files
    AZURE_STORAGE_ACCOUNT    storage account receiving uploaded logs
    AZURE_STORAGE_CONTAINER  blob container receiving uploaded logs

Example ``whitelist.yml``::

    log_dir: logs
    period_boundary_day: 20
    default_environment: dev
    storage:
      account_name: stfirewalllogs
      container_name: firewall-logs
    environments:
      dev:
        resource_group: rg-app-dev
        server_name: sql-app-dev

When no file is given and ``whitelist.yml`` does not exist the defaults
below apply.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from audit_log import DEFAULT_BOUNDARY_DAY

ENVIRONMENTS = ("dev", "qa", "prod")
DEFAULT_CONFIG_FILE = "whitelist.yml"


@dataclass
class EnvironmentConfig:
    name: str
    resource_group: Optional[str] = None
    server_name: Optional[str] = None


@dataclass
class StorageConfig:
    account_name: Optional[str] = None
    container_name: str = "firewall-logs"
    auth_mode: str = "login"


@dataclass
class WhitelistConfig:
    log_dir: Path = Path("logs")
    period_boundary_day: int = DEFAULT_BOUNDARY_DAY
    default_environment: str = "dev"
    storage: StorageConfig = field(default_factory=StorageConfig)
    environments: Dict[str, EnvironmentConfig] = field(default_factory=dict)

    def environment(self, name: str) -> EnvironmentConfig:
        return self.environments.get(name) or EnvironmentConfig(name=name)


def _section(data: Dict[str, Any], key: str, label: Optional[str] = None) -> Dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"'{label or key}' must be a mapping")
    return value


def parse_config(data: Dict[str, Any]) -> WhitelistConfig:
    storage = _section(data, "storage")
    envs = _section(data, "environments")

    raw_boundary = data.get("period_boundary_day", DEFAULT_BOUNDARY_DAY)
    try:
        boundary = int(raw_boundary)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'period_boundary_day' must be an integer. Found: {raw_boundary!r}") from exc
    if not 2 <= boundary <= 28:
        raise ValueError(f"'period_boundary_day' must be between 2 and 28. Found: {boundary}")

    default_env = str(data.get("default_environment", "dev"))
    if default_env not in ENVIRONMENTS:
        raise ValueError(f"'default_environment' must be one of {', '.join(ENVIRONMENTS)}. Found: '{default_env}'")

    environments: Dict[str, EnvironmentConfig] = {}
    for name in envs:
        if name not in ENVIRONMENTS:
            raise ValueError(f"Unknown environment '{name}' (expected one of {', '.join(ENVIRONMENTS)})")
        values = _section(envs, name, label=f"environments.{name}")
        environments[name] = EnvironmentConfig(
            name=name,
            resource_group=values.get("resource_group"),
            server_name=values.get("server_name"),
        )

    log_dir = os.getenv("WHITELIST_LOG_DIR") or data.get("log_dir") or "logs"
    if not isinstance(log_dir, str):
        raise ValueError(f"'log_dir' must be a path string. Found: {log_dir!r}")

    return WhitelistConfig(
        log_dir=Path(log_dir),
        period_boundary_day=boundary,
        default_environment=default_env,
        storage=StorageConfig(
            account_name=os.getenv("AZURE_STORAGE_ACCOUNT") or storage.get("account_name"),
            container_name=os.getenv("AZURE_STORAGE_CONTAINER") or storage.get("container_name") or "firewall-logs",
            auth_mode=storage.get("auth_mode") or "login",
        ),
        environments=environments,
    )


def load_config(path: Optional[str] = None) -> WhitelistConfig:
    """Load ``path`` (default ``whitelist.yml``); a missing default file gives defaults."""
    config_path = Path(path or DEFAULT_CONFIG_FILE)
    data: Any = {}
    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Failed to parse config {config_path}: {exc}") from exc
    elif path:
        raise ValueError(f"Config file {config_path} not found")
    if not isinstance(data, dict):
        raise ValueError(f"Invalid config {config_path}: expected a mapping at the top level")
    return parse_config(data)
