"""Tests for the control surface: run registry, output capture and batches."""

import logging
import threading
from unittest.mock import Mock

import pytest

from exporter.control import ControlService, RunOutputHandler, RunRegistry
from exporter.logging.context import log_context
from exporter.pipeline import RunResult
from exporter.utils.timestamps import utc_now

job_logger = logging.getLogger("exporter.test.job")


def result_for(key):
    now = utc_now()
    return RunResult(run_id="r", job_key=key, job_name=key, started_at=now, finished_at=now)


class TestRunRegistry:
    """Test drain-on-read batch output storage."""

    def test_in_progress_output(self):
        registry = RunRegistry()
        registry.start("h1")
        registry.append("h1", "line one")
        registry.append("h1", "line two")

        assert registry.get_output("h1") == {"output": "line one\nline two", "complete": False}
        assert "h1" in registry
        assert registry.active_handles() == ["h1"]

    def test_completed_output_is_drained(self):
        registry = RunRegistry()
        registry.start("h1")
        registry.append("h1", "done")
        registry.complete("h1")

        assert registry.get_output("h1") == {"output": "done", "complete": True}
        assert "h1" not in registry
        assert registry.get_output("h1") == {"output": "", "complete": True}

    def test_unknown_handle(self):
        assert RunRegistry().get_output("nope") == {"output": "", "complete": True}

    def test_append_after_complete_or_unknown_is_ignored(self):
        registry = RunRegistry()
        registry.start("h1")
        registry.complete("h1")
        registry.append("h1", "late")
        registry.append("other", "stray")

        assert registry.get_output("h1")["output"] == ""
        assert registry.active_handles() == []


class TestRunOutputHandler:
    """Test routing of log records to batch output."""

    def test_batch_id_from_record(self):
        registry = RunRegistry()
        registry.start("b1")
        handler = RunOutputHandler(registry, fmt="%(levelname)s %(message)s")

        record = logging.makeLogRecord(
            {"msg": "hello", "levelname": "INFO", "levelno": logging.INFO, "batch_id": "b1"}
        )

        handler.handle(record)

        assert registry.get_output("b1")["output"] == "INFO hello"

    def test_batch_id_from_context(self):
        registry = RunRegistry()
        registry.start("b2")
        handler = RunOutputHandler(registry, fmt="%(message)s")

        with log_context(batch_id="b2"):
            handler.handle(logging.makeLogRecord({"msg": "from context", "levelno": logging.INFO}))

        assert registry.get_output("b2")["output"] == "from context"

    def test_records_without_batch_are_ignored(self):
        registry = Mock()
        handler = RunOutputHandler(registry)

        handler.handle(logging.makeLogRecord({"msg": "unrelated", "levelno": logging.INFO}))

        registry.append.assert_not_called()

    def test_level_filters_records(self):
        registry = RunRegistry()
        registry.start("b3")
        handler = RunOutputHandler(registry, level=logging.WARNING, fmt="%(message)s")
        source = logging.getLogger("exporter.test.levels")
        source.setLevel(logging.DEBUG)
        source.addHandler(handler)
        try:
            source.info("quiet", extra={"batch_id": "b3"})
            source.warning("loud", extra={"batch_id": "b3"})
        finally:
            source.removeHandler(handler)

        assert registry.get_output("b3")["output"] == "loud"


@pytest.fixture
def scheduler_service(exporter_config):
    service = Mock()
    service.config = exporter_config
    return service


@pytest.fixture
def control(scheduler_service, caplog):
    caplog.set_level(logging.INFO)
    service = ControlService(scheduler_service)
    yield service
    service.close()


class TestControlService:
    """Test batch launch and output polling."""

    def test_list_jobs(self, control, exporter_config):
        assert control.list_jobs() == exporter_config.list_jobs()

    def test_execute_captures_batch_output(self, control, scheduler_service):
        def run_now(job_keys, batch_id=None):
            job_logger.info(f"Running {job_keys[0]}")
            return [result_for(job_keys[0])]

        scheduler_service.run_now.side_effect = run_now

        handle = control.execute(["adhoc"])
        assert control.wait(handle, timeout=5)

        output = control.get_output(handle)
        assert output["complete"] is True
        assert "Running adhoc" in output["output"]
        assert "Batch complete: 1 succeeded, 0 failed" in output["output"]
        scheduler_service.run_now.assert_called_once_with(["adhoc"], batch_id=handle)
        assert control.get_output(handle) == {"output": "", "complete": True}

    def test_empty_keys_run_every_job(self, control, scheduler_service):
        scheduler_service.run_now.return_value = []

        handle = control.execute([])
        control.wait(handle, timeout=5)

        scheduler_service.run_now.assert_called_once_with(None, batch_id=handle)

    def test_output_while_running(self, control, scheduler_service):
        started = threading.Event()
        release = threading.Event()

        def run_now(job_keys, batch_id=None):
            job_logger.info("first step")
            started.set()
            release.wait(timeout=5)
            return [result_for("adhoc")]

        scheduler_service.run_now.side_effect = run_now

        handle = control.execute(["adhoc"])
        assert started.wait(timeout=5)
        partial = control.get_output(handle)
        release.set()
        control.wait(handle, timeout=5)

        assert partial["complete"] is False
        assert "first step" in partial["output"]
        assert control.get_output(handle)["complete"] is True

    def test_batches_are_isolated(self, control, scheduler_service):
        def run_now(job_keys, batch_id=None):
            job_logger.info(f"output of {job_keys[0]}")
            return [result_for(job_keys[0])]

        scheduler_service.run_now.side_effect = run_now

        first = control.execute(["adhoc"])
        second = control.execute(["daily_report"])
        control.wait(first, timeout=5)
        control.wait(second, timeout=5)

        first_output = control.get_output(first)["output"]
        second_output = control.get_output(second)["output"]
        assert "output of adhoc" in first_output
        assert "output of daily_report" not in first_output
        assert "output of daily_report" in second_output

    def test_batch_error_completes(self, control, scheduler_service):
        scheduler_service.run_now.side_effect = RuntimeError("scheduler gone")

        handle = control.execute(["adhoc"])
        control.wait(handle, timeout=5)

        output = control.get_output(handle)
        assert output["complete"] is True
        assert "scheduler gone" in output["output"]

    def test_failed_runs_counted(self, control, scheduler_service):
        failed = result_for("adhoc")
        failed.status = "failed"
        scheduler_service.run_now.return_value = [failed, result_for("daily_report")]

        handle = control.execute()
        control.wait(handle, timeout=5)

        assert "1 succeeded, 1 failed" in control.get_output(handle)["output"]

    def test_close_detaches_handler(self, scheduler_service):
        target = logging.getLogger("exporter.test.capture")
        service = ControlService(scheduler_service, capture_logger=target)
        assert service.handler in target.handlers

        service.close()

        assert service.handler not in target.handlers
