"""Trigger surface for an external control plane."""

import logging
import threading
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

from exporter.logging import get_logger
from exporter.logging.context import log_context
from exporter.scheduler.service import SchedulerService

from .capture import RunOutputHandler
from .registry import RunRegistry

logger = get_logger(__name__, component="control")


class ControlService:
    """
    Lists jobs, launches run-now batches and serves their captured output.

    Example:
        >>> control = ControlService(scheduler_service)
        >>> handle = control.execute(["daily_report"])
        >>> control.get_output(handle)
        {'output': '... Job started ...', 'complete': False}
    """

    def __init__(
        self,
        scheduler_service: SchedulerService,
        registry: Optional[RunRegistry] = None,
        capture_logger: Optional[logging.Logger] = None,
    ):
        self.scheduler_service = scheduler_service
        self.registry = registry or RunRegistry()
        self.handler = RunOutputHandler(self.registry)
        self._capture_logger = capture_logger or logging.getLogger()
        self._capture_logger.addHandler(self.handler)
        self._threads: Dict[str, threading.Thread] = {}

    def list_jobs(self) -> List[Dict[str, str]]:
        """Every configured job as {key, name, cron | "no-cron"}."""
        return self.scheduler_service.config.list_jobs()

    def execute(self, job_keys: Optional[Iterable[str]] = None) -> str:
        """
        Launch a batch asynchronously.

        Args:
            job_keys: Jobs to run; None or empty runs every configured job

        Returns:
            Opaque handle for get_output
        """
        handle = uuid4().hex
        keys = list(job_keys) if job_keys else None
        self.registry.start(handle)

        thread = threading.Thread(
            target=self._run_batch,
            args=(handle, keys),
            name=f"batch-{handle[:8]}",
            daemon=True,
        )
        self._threads[handle] = thread
        thread.start()

        logger.info(
            f"Launched batch {handle}",
            extra={"event": "control.batch.started", "batch_id": handle, "job_keys": keys},
        )
        return handle

    def _run_batch(self, handle: str, job_keys: Optional[List[str]]) -> None:
        with log_context(batch_id=handle):
            try:
                results = self.scheduler_service.run_now(job_keys, batch_id=handle)
                failed = sum(1 for result in results if not result.succeeded)
                logger.info(
                    f"Batch complete: {len(results) - failed} succeeded, {failed} failed",
                    extra={"event": "control.batch.completed", "failed_count": failed},
                )
            except Exception as e:
                logger.error(
                    f"Batch {handle} failed: {e}",
                    exc_info=True,
                    extra={"event": "control.batch.error"},
                )
            finally:
                self.registry.complete(handle)
                self._threads.pop(handle, None)

    def get_output(self, handle: str) -> Dict[str, object]:
        """Accumulated log text of a batch: {"output": str, "complete": bool}."""
        return self.registry.get_output(handle)

    def wait(self, handle: str, timeout: Optional[float] = None) -> bool:
        """Block until a batch finishes; returns False on timeout."""
        thread = self._threads.get(handle)
        if thread is not None:
            thread.join(timeout)
            return not thread.is_alive()
        return True

    def close(self) -> None:
        """Detach the output handler from the logger."""
        self._capture_logger.removeHandler(self.handler)
