"""Pipeline stages: request, transform, template and export."""

from .base import StageContext
from .exceptions import (
    ExportError,
    RequestAuthError,
    RequestError,
    RequestHTTPError,
    RequestResponseError,
    RequestTimeoutError,
    StageConfigurationError,
    StageError,
    TemplateRenderError,
    TransformError,
)
from .export import ExportStage, build_default_sinks
from .rendering import TemplateRenderer, day_interval
from .request import RequestStage
from .template import TemplateStage
from .transform import TransformStage
from .transport import ApiTransport

__all__ = [
    "StageContext",
    "ApiTransport",
    "TemplateRenderer",
    "day_interval",
    "RequestStage",
    "TransformStage",
    "TemplateStage",
    "ExportStage",
    "build_default_sinks",
    "StageError",
    "StageConfigurationError",
    "RequestError",
    "RequestHTTPError",
    "RequestTimeoutError",
    "RequestAuthError",
    "RequestResponseError",
    "TransformError",
    "TemplateRenderError",
    "ExportError",
]
