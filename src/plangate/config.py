"""Loading and writing the YAML runtime configuration."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

DEFAULT_CONFIG_NAME = "config.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "project": {
        "name": "",
        "description": "",
    },
    "safety": {
        "max_units_to_write": 10_000,
        "max_rows_to_delete": 100,
        "max_columns_to_delete": 10,
        "require_confirmation_for_whole_document_ops": True,
        "require_backup_before_destructive_ops": True,
        "read_only_mode": False,
        "experimental_features_enabled": False,
    },
    "memory": {
        "db_path": "data/plangate.sqlite",
        "max_entries": 20,
    },
}


class ConfigError(RuntimeError):
    """Raised when the configuration file is missing or malformed."""


def copy_config_template() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration from disk and return it as a dictionary."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config: {error}") from error

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.")

    return data


def write_config(config_path: Path, config_data: Mapping[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(dict(config_data), handle, sort_keys=False)


def section(config: Mapping[str, Any] | None, name: str) -> Mapping[str, Any]:
    """Return a named config section, treating missing or non-mapping values as empty."""
    if not config:
        return {}
    value = config.get(name) or {}
    if not isinstance(value, Mapping):
        return {}
    return value
