from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import jsonschema
import yaml

from ..acl.validators import DEFAULT_EMPLOYEE_PREFIXES
from ..infra.errors import ConfigError
from ..utils.yamlio import read_yaml
from .settings import DEFAULT_LOCK_FILE, DispatcherSettings, RouterSettings, WhitelisterConfig


CONFIG_ENV_VAR = "WHITELISTER_CONFIG"
DEFAULT_CONFIG_PATH = Path("/etc/whitelister/whitelister.yml")


def _nullable(schema: Dict[str, Any]) -> Dict[str, Any]:
    return {"anyOf": [schema, {"type": "null"}]}


_NON_EMPTY_STR = {"type": "string", "minLength": 1}
_FIELD_STR = {"type": "string", "pattern": r"^\S+$"}


def _config_schema() -> Dict[str, Any]:
    return {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "type": "object",
        "required": ["dispatcher_table", "router_table"],
        "properties": {
            "dispatcher_table": _NON_EMPTY_STR,
            "router_table": _NON_EMPTY_STR,
            "lock_file": _NON_EMPTY_STR,
            "backup_dir": _nullable(_NON_EMPTY_STR),
            "log_file": _nullable(_NON_EMPTY_STR),
            "reload_command": _nullable({"type": "array", "minItems": 1, "items": _NON_EMPTY_STR}),
            "dispatcher": {
                "type": "object",
                "properties": {
                    "marker": _NON_EMPTY_STR,
                    "rule": _FIELD_STR,
                    "path_glob": _FIELD_STR,
                    "user_glob": _FIELD_STR,
                    "group_glob": _FIELD_STR,
                    "dest_glob": _FIELD_STR,
                },
                "additionalProperties": False,
            },
            "router": {
                "type": "object",
                "properties": {
                    "marker": _nullable(_NON_EMPTY_STR),
                    "rule": _FIELD_STR,
                },
                "additionalProperties": False,
            },
            "employee_id_prefixes": {"type": "string", "pattern": "^[A-Za-z]+$"},
        },
        "additionalProperties": False,
    }


def resolve_config_path(cli_path: Optional[str] = None) -> Path:
    """Resolve the configuration file path.

    Precedence:
      1) CLI flag --config
      2) WHITELISTER_CONFIG
      3) /etc/whitelister/whitelister.yml
    """
    if cli_path and str(cli_path).strip():
        return Path(str(cli_path).strip()).expanduser().resolve()

    env_path = str(os.environ.get(CONFIG_ENV_VAR, "") or "").strip()
    if env_path:
        return Path(env_path).expanduser().resolve()

    return DEFAULT_CONFIG_PATH


def _path(base: Path, value: Optional[str]) -> Optional[Path]:
    if value is None:
        return None
    p = Path(value).expanduser()
    return p if p.is_absolute() else (base / p).resolve()


def load_config(cli_path: Optional[str] = None) -> WhitelisterConfig:
    """Load and validate the whitelister configuration.

    Relative paths in the file are resolved against the file's own directory.

    Raises:
        ConfigError: if the file is missing, unreadable or fails validation.
    """
    path = resolve_config_path(cli_path)
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")

    try:
        data = read_yaml(path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e

    try:
        jsonschema.validate(instance=data, schema=_config_schema())
    except jsonschema.ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigError(f"invalid config {path} at {where}: {e.message}") from e

    base = path.parent
    reload_command = data.get("reload_command")
    return WhitelisterConfig(
        dispatcher_table=_path(base, data["dispatcher_table"]),
        router_table=_path(base, data["router_table"]),
        lock_file=_path(base, data.get("lock_file")) or DEFAULT_LOCK_FILE,
        backup_dir=_path(base, data.get("backup_dir")),
        log_file=_path(base, data.get("log_file")),
        reload_command=tuple(reload_command) if reload_command else None,
        dispatcher=DispatcherSettings(**(data.get("dispatcher") or {})),
        router=RouterSettings(**(data.get("router") or {})),
        employee_id_prefixes=data.get("employee_id_prefixes") or DEFAULT_EMPLOYEE_PREFIXES,
        source_path=path,
    )
