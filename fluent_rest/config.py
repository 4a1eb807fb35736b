"""Configuration Store - process-wide defaults read by new builders.

configure() merges over the current defaults and swaps in a new frozen
Configuration. Builders copy current_defaults() when they are created, so a
later configure() never reaches a builder that already exists.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from fluent_rest.diagnostics import setup_logging, teardown_logging
from fluent_rest.errors import ConfigurationError
from fluent_rest.models import Configuration

_defaults = Configuration()

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def current_defaults() -> Configuration:
    """Return the current process-wide defaults (immutable)."""
    return _defaults


def configure(**options: Any) -> Configuration:
    """Merge options over the current defaults.

    Unspecified fields keep their previous values. Raises ConfigurationError
    for unknown option names or invalid values; the previous defaults are then
    left in place.
    """
    global _defaults

    unknown = set(options) - set(Configuration.model_fields)
    if unknown:
        raise ConfigurationError(
            f"Unknown configuration option(s): {', '.join(sorted(unknown))}. "
            f"Valid options: {', '.join(Configuration.model_fields)}"
        )

    merged = _defaults.model_dump()
    merged.update(options)
    try:
        new_defaults = Configuration.model_validate(merged)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    setup_logging(new_defaults)
    _defaults = new_defaults
    return new_defaults


def reset_defaults() -> Configuration:
    """Restore factory defaults and remove any installed log handler."""
    global _defaults
    _defaults = Configuration()
    teardown_logging()
    return _defaults


def restore_defaults(snapshot: Configuration) -> Configuration:
    """Reinstate a snapshot previously returned by current_defaults()."""
    global _defaults
    setup_logging(snapshot)
    _defaults = snapshot
    return snapshot


def load_config(config_path: Path | str) -> dict[str, Any]:
    """Load configuration options from YAML with ${ENV_VAR} substitution."""
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config file: {e}") from e

    if raw_config is None:
        return {}
    if not isinstance(raw_config, dict):
        raise ConfigurationError("Config file must be a YAML mapping")

    return _substitute_env_vars(raw_config)


def configure_from_file(config_path: Path | str) -> Configuration:
    """configure() with the options found in a YAML file."""
    return configure(**load_config(config_path))


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
    """Substitute ${ENV_VAR} patterns. Raises ConfigurationError if a variable is unset."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigurationError(f"Environment variable '{var_name}' is not set")
        return value

    return _ENV_VAR_PATTERN.sub(replacer, s)
