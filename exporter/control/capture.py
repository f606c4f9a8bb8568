"""Logging handler that copies batch log records into the RunRegistry."""

import logging
from typing import Optional

from exporter.logging.context import get_log_context

from .registry import RunRegistry

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(message)s"


class RunOutputHandler(logging.Handler):
    """
    Appends every record carrying a ``batch_id`` to that batch's output.

    The batch id comes from the record's extra fields or, failing that, the
    log context of the emitting thread.
    """

    def __init__(self, registry: RunRegistry, level: int = logging.INFO, fmt: Optional[str] = None):
        super().__init__(level)
        self.registry = registry
        self.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))

    def emit(self, record: logging.LogRecord) -> None:
        batch_id = getattr(record, "batch_id", None) or get_log_context().get("batch_id")
        if not batch_id:
            return
        try:
            self.registry.append(batch_id, self.format(record))
        except Exception:
            self.handleError(record)
