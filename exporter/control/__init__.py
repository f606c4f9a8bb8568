"""Control-plane trigger surface: list jobs, launch batches, poll output."""

from .capture import RunOutputHandler
from .registry import RunRegistry
from .service import ControlService

__all__ = ["ControlService", "RunRegistry", "RunOutputHandler"]
