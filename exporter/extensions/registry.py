"""Name -> transform function lookup.

Transforms refer to functions by registered name (``report_card.prepare_report``)
or, for extension transforms, by import path (``my_package.reports:build``).
"""

import importlib
import logging
import threading
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

TransformFunction = Callable[..., object]


class ExtensionNotFoundError(LookupError):
    """A transform reference resolves to nothing callable."""

    pass


class ExtensionRegistry:
    """Thread-safe registry of transform functions.

    Every function follows the same contract: it receives the DataBag (or
    the slice named by the transform's ``source``) as its first argument,
    the transform's parameters as keyword arguments, and mutates the data
    in place.
    """

    def __init__(self):
        self._functions: Dict[str, TransformFunction] = {}
        self._lock = threading.Lock()

    def register(self, name: str, function: Optional[TransformFunction] = None):
        """Register ``function`` under ``name``; usable as a decorator.

        Example:
            >>> registry = ExtensionRegistry()
            >>> @registry.register("copy")
            ... def copy_value(data, source, target): ...
        """

        def decorator(fn: TransformFunction) -> TransformFunction:
            if not callable(fn):
                raise TypeError(f"Extension '{name}' is not callable")
            with self._lock:
                if name in self._functions and self._functions[name] is not fn:
                    logger.warning(f"Replacing registered extension '{name}'")
                self._functions[name] = fn
            return fn

        if function is not None:
            return decorator(function)
        return decorator

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._functions)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._functions

    def resolve(self, ref: str, allow_import: bool = True) -> TransformFunction:
        """Find the function for ``ref``.

        Args:
            ref: Registered name, or ``module:function`` import path
            allow_import: Whether import paths are accepted

        Raises:
            ExtensionNotFoundError: If nothing callable matches
        """
        with self._lock:
            function = self._functions.get(ref)
        if function is not None:
            return function

        if allow_import and ":" in ref:
            return _import_function(ref)

        raise ExtensionNotFoundError(f"No extension registered as '{ref}'")


def _import_function(ref: str) -> TransformFunction:
    module_name, _, attr_path = ref.partition(":")
    if not module_name or not attr_path:
        raise ExtensionNotFoundError(f"Invalid extension path '{ref}', expected 'module:function'")

    try:
        target = importlib.import_module(module_name)
    except ImportError as e:
        raise ExtensionNotFoundError(f"Cannot import extension module '{module_name}': {e}") from e

    for attr in attr_path.split("."):
        try:
            target = getattr(target, attr)
        except AttributeError as e:
            raise ExtensionNotFoundError(f"Extension '{ref}' not found: {e}") from e

    if not callable(target):
        raise ExtensionNotFoundError(f"Extension '{ref}' is not callable")
    return target


_default_registry: Optional[ExtensionRegistry] = None
_default_lock = threading.Lock()


def default_registry() -> ExtensionRegistry:
    """Process-wide registry preloaded with built-in and report card transforms."""
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            from . import builtins, report_card

            registry = ExtensionRegistry()
            builtins.register(registry)
            report_card.register(registry)
            _default_registry = registry
        return _default_registry
