"""
LSPWRAPPER Configuration
========================

Loads YAML configuration, merges it over built-in defaults and
validates the result against a JSON schema.

Configuration hierarchy (highest to lowest priority):
1. Local overrides (runtime/CLI)
2. YAML configuration file
3. Built-in defaults
"""

import logging
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Optional, Union

import jsonschema
import yaml

from .exceptions import ConfigurationError
from .saga import SagaEnvironment

logger = logging.getLogger(__name__)

DEFAULT_RADIUS = 50

DEFAULT_CONFIG: Dict[str, Any] = {
    "workspace": ".",
    "saga": {
        "path": None,  # saga_cmd on PATH
        "cores": None,  # all logical CPUs
        "timeout_seconds": None,
    },
    "lsp": {
        "tpi_radius": None,
        "rel_ele_radius": None,
        "use_sca": False,
        "rm_twi_tmp_files": False,
        # Kemppinen et al. 2018
        "pisr_start_day": 20,
        "pisr_end_day": 23,
        "pisr_start_month": 3,
        "pisr_end_month": 9,
        "pisr_day_step": 6,
        "pisr_time_step": 4,
        "pisr_year": 2019,
        "pisr_latitude": 69,
        "log_file": "log_file.txt",
    },
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    },
}

_number_or_null = {"type": ["number", "null"]}

CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "workspace": {"type": "string"},
        "saga": {
            "type": "object",
            "properties": {
                "path": {"type": ["string", "null"]},
                "cores": {"type": ["integer", "null"], "minimum": 1},
                "timeout_seconds": {"type": ["number", "null"], "exclusiveMinimum": 0},
            },
            "additionalProperties": False,
        },
        "lsp": {
            "type": "object",
            "properties": {
                "tpi_radius": _number_or_null,
                "rel_ele_radius": _number_or_null,
                "use_sca": {"type": "boolean"},
                "rm_twi_tmp_files": {"type": "boolean"},
                "pisr_start_day": {"type": "integer", "minimum": 1, "maximum": 31},
                "pisr_end_day": {"type": "integer", "minimum": 1, "maximum": 31},
                "pisr_start_month": {"type": "integer", "minimum": 1, "maximum": 12},
                "pisr_end_month": {"type": "integer", "minimum": 1, "maximum": 12},
                "pisr_day_step": {"type": "integer", "minimum": 1},
                "pisr_time_step": {"type": "number", "exclusiveMinimum": 0},
                "pisr_year": {"type": "integer"},
                "pisr_latitude": {"type": "number", "minimum": -90, "maximum": 90},
                "log_file": {"type": "string"},
            },
            "additionalProperties": False,
        },
        "logging": {
            "type": "object",
            "properties": {
                "level": {
                    "type": "string",
                    "enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                },
                "format": {"type": "string"},
            },
        },
    },
    "additionalProperties": False,
}


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with override taking precedence.

    Args:
        base: Base dictionary
        override: Override dictionary

    Returns:
        New merged dictionary
    """
    result = deepcopy(base)

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = deepcopy(value)

    return result


def _load_yaml_file(file_path: Path) -> Dict[str, Any]:
    """Load and parse YAML file."""
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {file_path}: {e}")
    except OSError as e:
        raise ConfigurationError(f"Failed to load {file_path}: {e}")

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigurationError(f"Configuration in {file_path} must be a mapping")
    return content


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate configuration against the schema.

    Raises:
        ConfigurationError: If validation fails
    """
    try:
        jsonschema.validate(config, CONFIG_SCHEMA)
    except jsonschema.ValidationError as e:
        path = ".".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigurationError(f"Configuration validation failed at {path}: {e.message}")


def load_config(
    path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build the effective configuration.

    Args:
        path: Optional YAML configuration file
        overrides: Optional overrides applied last

    Returns:
        Merged and validated configuration

    Raises:
        ConfigurationError: If the file is unreadable or invalid
    """
    config = deepcopy(DEFAULT_CONFIG)

    if path is not None:
        file_path = Path(path)
        if not file_path.exists():
            raise ConfigurationError(f"Configuration file not found: {file_path}")
        config = deep_merge(config, _load_yaml_file(file_path))
        logger.info(f"Loaded configuration: {file_path}")

    if overrides:
        config = deep_merge(config, overrides)

    validate_config(config)
    return config


def environment_from_config(config: Dict[str, Any]) -> SagaEnvironment:
    """Create a SAGA environment from the ``saga`` and ``workspace`` settings."""
    saga_config = config.get("saga", {})
    return SagaEnvironment(
        workspace=config.get("workspace", "."),
        path=saga_config.get("path"),
        cores=saga_config.get("cores"),
        timeout=saga_config.get("timeout_seconds"),
    )
