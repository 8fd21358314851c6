"""Config Loader - Loads the client configuration from YAML.

Strings in the file may reference environment variables as ${ENV_VAR},
which keeps proxy credentials out of checked-in files.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from request_factory.models import ClientConfig


class ConfigError(Exception):
    """Raised when configuration loading fails."""


_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def load_client_config(config_path: Path) -> ClientConfig:
    """Load client configuration from YAML with ${ENV_VAR} substitution."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    # An empty file means "all defaults"
    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    try:
        return ClientConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def _substitute_env_vars(data: Any, key: str = "") -> Any:
    """Recursively substitute ${ENV_VAR} patterns in the values of data.

    key is the dotted path of data within the file, e.g. "proxy_password",
    and is only used to say where an unset variable was referenced.
    """
    if isinstance(data, str):
        return _substitute_string(data, key)
    if isinstance(data, dict):
        return {
            k: _substitute_env_vars(v, f"{key}.{k}" if key else str(k))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [_substitute_env_vars(item, f"{key}[{i}]") for i, item in enumerate(data)]
    return data


def _substitute_string(value: str, key: str) -> str:
    def lookup(match: re.Match) -> str:
        var_name = match.group(1)
        resolved = os.environ.get(var_name)
        if resolved is None:
            raise ConfigError(
                f"Environment variable '{var_name}' referenced by '{key}' is not set"
            )
        return resolved

    return _ENV_VAR_PATTERN.sub(lookup, value)
