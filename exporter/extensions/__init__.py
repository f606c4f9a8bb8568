"""Transform functions and the registry that resolves them by name."""

from .aggregation import (
    default_queue_metrics,
    derive_stats,
    get_metric_map,
    js_round,
    safe_divide,
    safe_number,
)
from .registry import ExtensionNotFoundError, ExtensionRegistry, default_registry

__all__ = [
    "ExtensionRegistry",
    "ExtensionNotFoundError",
    "default_registry",
    "safe_number",
    "safe_divide",
    "js_round",
    "get_metric_map",
    "default_queue_metrics",
    "derive_stats",
]
