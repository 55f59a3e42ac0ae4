"""Configuration for whitelister.

A single YAML file names the two managed tables, the lock file and the
optional reload command. See ``config/whitelister.example.yml``.
"""
from __future__ import annotations

from .load_config import CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH, load_config, resolve_config_path
from .settings import DispatcherSettings, RouterSettings, WhitelisterConfig

__all__ = [
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_PATH",
    "DispatcherSettings",
    "RouterSettings",
    "WhitelisterConfig",
    "load_config",
    "resolve_config_path",
]
