"""Configuration management for the open data exporter."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError, ScheduleError
from .loader import load_config, parse_config
from .models import (
    AdvancedConfig,
    ConfigurationSet,
    CredentialsConfig,
    ExportDef,
    ExporterConfig,
    ExportType,
    HttpMethod,
    JobSpec,
    LogFormat,
    LoggingConfig,
    LogLevel,
    PaginationPolicy,
    PaginationType,
    RequestDef,
    TemplateDef,
    TemplateFormat,
    TransformDef,
    TransformKind,
)

__all__ = [
    # Loader functions
    "load_config",
    "parse_config",
    "load_environment_config",
    # Configuration models
    "ExporterConfig",
    "CredentialsConfig",
    "RequestDef",
    "PaginationPolicy",
    "TransformDef",
    "TemplateDef",
    "ExportDef",
    "ConfigurationSet",
    "JobSpec",
    "LoggingConfig",
    "AdvancedConfig",
    "EnvironmentConfig",
    # Enums
    "HttpMethod",
    "PaginationType",
    "TransformKind",
    "TemplateFormat",
    "ExportType",
    "LogLevel",
    "LogFormat",
    # Exceptions
    "ConfigurationError",
    "ScheduleError",
]
