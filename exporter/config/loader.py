"""Configuration loader for the open data exporter."""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from pydantic import ValidationError

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .models import ExporterConfig
from .validators import check_for_warnings, emit_warnings

DEFAULT_CONFIG_CANDIDATES = (
    Path("config.yaml"),
    Path("config.json"),
    Path("config") / "config.yaml",
)


def load_config(
    config_path: Optional[Path] = None,
) -> Tuple[ExporterConfig, EnvironmentConfig]:
    """
    Load and validate configuration from a YAML/JSON file and environment variables.

    Fallback logic for the config file location:
    1. Use provided config_path if given
    2. Try config.yaml, config.json, then config/config.yaml
    3. Fail with a helpful error message

    Environment credential overrides are applied to the returned config.

    Args:
        config_path: Optional path to configuration file

    Returns:
        Tuple of (ExporterConfig, EnvironmentConfig)

    Raises:
        ConfigurationError: If configuration is invalid or file not found
    """
    config_file = _find_config_file(config_path)
    config_dict = _read_config_file(config_file)

    try:
        app_config = parse_config(config_dict, base_dir=config_file.resolve().parent)
    except ConfigurationError as e:
        e.attach_source(config_file)
        raise

    try:
        env_config = load_environment_config()
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load environment configuration: {e}",
            suggestions=["Copy .env.example to .env and fill in your settings"],
        ) from e

    app_config.credentials = env_config.apply_to_credentials(app_config.credentials)

    warnings = check_for_warnings(app_config)
    if warnings:
        emit_warnings(warnings)

    return app_config, env_config


def parse_config(config_dict: Any, base_dir: Optional[Path] = None) -> ExporterConfig:
    """
    Validate a raw configuration mapping.

    Args:
        config_dict: Parsed YAML/JSON document
        base_dir: Directory relative template and export paths resolve against

    Returns:
        Validated ExporterConfig

    Raises:
        ConfigurationError: If the document does not match the schema
    """
    if not config_dict:
        raise ConfigurationError(
            "Configuration file is empty",
            suggestions=["Start from config.example.yaml and add at least one job"],
        )
    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            f"Configuration must be a mapping, got {type(config_dict).__name__}",
            suggestions=["The top level of the file must contain keys such as jobs, requests"],
        )

    try:
        app_config = ExporterConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigurationError(
            "Configuration validation failed",
            errors=_format_validation_errors(e),
            suggestions=[
                "Review config.example.yaml for correct format",
                "Check that all required fields are present",
                "Verify field types match the expected schema",
            ],
        ) from e

    if base_dir is not None:
        app_config.base_dir = base_dir

    return app_config


def _format_validation_errors(error: ValidationError) -> list:
    """Convert pydantic errors into user-facing messages."""
    errors = []
    for item in error.errors():
        field_path = " -> ".join(str(loc) for loc in item["loc"])
        error_type = item["type"]

        if error_type == "missing":
            errors.append(f"Missing required field: {field_path}")
        elif error_type in ("string_type", "int_type", "bool_type", "list_type", "dict_type"):
            expected_type = error_type.replace("_type", "")
            errors.append(
                f"Invalid type for '{field_path}': expected {expected_type}, got {item.get('input')}"
            )
        elif "enum" in error_type:
            errors.append(f"Invalid value for '{field_path}': {item['msg']}")
        else:
            errors.append(f"{field_path}: {item['msg']}")
    return errors


def _read_config_file(config_file: Path) -> Dict[str, Any]:
    """Read a YAML or JSON configuration file."""
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            if config_file.suffix.lower() == ".json":
                return json.load(f)
            return yaml.safe_load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Failed to parse JSON configuration: {e}",
            source=config_file,
            suggestions=["Check JSON syntax in your config file"],
        ) from e
    except FileNotFoundError as e:
        raise ConfigurationError(
            f"Configuration file not found: {config_file}",
            suggestions=[f"Ensure {config_file} exists and is readable"],
        ) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse configuration: {e}",
            source=config_file,
            suggestions=[
                "Check YAML/JSON syntax in your config file",
                "Ensure proper indentation (use spaces, not tabs)",
            ],
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read configuration file: {e}",
            suggestions=[f"Ensure {config_file} is readable", "Check file permissions"],
        ) from e


def _find_config_file(config_path: Optional[Path] = None) -> Path:
    """Find the configuration file using fallback logic."""
    if config_path:
        if not config_path.exists():
            raise ConfigurationError(
                f"Specified configuration file not found: {config_path}",
                suggestions=[f"Ensure {config_path} exists", "Check the path and try again"],
            )
        return config_path

    for candidate in DEFAULT_CONFIG_CANDIDATES:
        if candidate.exists():
            return candidate

    raise ConfigurationError(
        "Configuration file not found",
        errors=[f"Tried: {candidate}" for candidate in DEFAULT_CONFIG_CANDIDATES],
        suggestions=[
            "Copy config.example.yaml to config.yaml",
            "Use --config to specify a custom location",
        ],
    )
