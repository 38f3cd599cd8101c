"""Config Loader - Loads ClientConfig from YAML.

String values may reference environment variables as ${ENV_VAR}, which keeps
credentials such as Authorization headers out of config files:

    default_headers:
      Authorization: "Bearer ${API_TOKEN}"
      Accept: application/json
    raise_on_status: false
    timeout: 10
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml

from api_request.errors import ConfigError
from api_request.models import DEFAULT_HEADERS, ClientConfig

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def load_client_config(config_path: Path) -> ClientConfig:
    """Load client configuration from YAML with ${ENV_VAR} substitution.

    default_headers in the file are merged over the built-in defaults, so a
    file only needs to list the headers it adds or overrides.

    Raises:
        ConfigError: If the file is missing, not a YAML mapping, references an
            unset environment variable, or does not validate.
    """
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    headers = raw_config.get("default_headers")
    if headers is not None:
        if not isinstance(headers, dict):
            raise ConfigError("default_headers must be a mapping")
        raw_config["default_headers"] = {**DEFAULT_HEADERS, **headers}

    try:
        return ClientConfig.model_validate(raw_config)
    except Exception as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return _ENV_VAR_PATTERN.sub(replacer, s)
