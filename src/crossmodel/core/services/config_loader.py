"""YAML/JSON file loading with environment variable substitution."""

import os
import re
from pathlib import Path
from typing import Any

import yaml

# ${VAR} or ${VAR:-default}
_ENV_PATTERN = re.compile(r"\$\{([^}:-]+)(?::-([^}]*))?\}")

_SENSITIVE_MARKERS = ("secret", "token", "password", "key", "credential", "uri")


class ConfigLoadError(Exception):
    """Raised when a configuration or descriptor file cannot be loaded."""

    pass


def substitute_env_vars(value: Any) -> Any:
    """Recursively replace ``${VAR}`` and ``${VAR:-default}`` in strings.

    Args:
        value: String, dict, or list to process. Other values pass through.

    Returns:
        The value with environment variables substituted.

    Raises:
        ConfigLoadError: If a variable without default is not set.
    """
    if isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [substitute_env_vars(item) for item in value]
    if not isinstance(value, str):
        return value

    def replace(match: re.Match) -> str:
        name, default = match.group(1), match.group(2)
        resolved = os.environ.get(name, default)
        if resolved is None:
            raise ConfigLoadError(
                f"Environment variable '{name}' is not set and no default provided"
            )
        return resolved

    return _ENV_PATTERN.sub(replace, value)


def load_yaml_config(path: Path) -> Any:
    """Parse a YAML (or JSON) file and substitute environment variables.

    Raises:
        ConfigLoadError: If the file is missing, empty or not valid YAML.
    """
    if not path.exists():
        raise ConfigLoadError(f"Configuration file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"Invalid YAML in {path}: {e}") from e

    if content is None:
        raise ConfigLoadError(f"Empty configuration file: {path}")
    return substitute_env_vars(content)


def load_mapping(path: Path) -> dict[str, Any]:
    """Load a file whose top level must be a mapping."""
    content = load_yaml_config(path)
    if not isinstance(content, dict):
        raise ConfigLoadError(f"Expected a mapping at the top level of {path}")
    return content


def load_source_config(path: Path) -> dict[str, Any]:
    """Load the connection configuration of a single data source.

    Used with ``crossmodel source add --config <file>``.

    Example config file:
        host: ${PG_HOST:-localhost}
        database: analytics
        username: reporting
        password: ${PG_PASSWORD}
    """
    return load_mapping(path)


def mask_sensitive_values(config: dict[str, Any]) -> dict[str, Any]:
    """Copy of a configuration dict with secrets replaced by ``***``.

    Keys containing secret, token, password, key, credential or uri are
    masked, at any nesting depth.
    """

    def is_sensitive(key: str) -> bool:
        lowered = key.lower()
        return any(marker in lowered for marker in _SENSITIVE_MARKERS)

    def mask(key: str, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: mask(k, v) for k, v in value.items()}
        if isinstance(value, list):
            return [mask(key, item) for item in value]
        if value is not None and is_sensitive(key):
            return "***"
        return value

    return {k: mask(k, v) for k, v in config.items()}
