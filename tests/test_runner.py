"""Tests for job execution over a fresh DataBag."""

import logging
from unittest.mock import Mock

import pytest

from exporter.config.environment import EnvironmentConfig
from exporter.config.loader import parse_config
from exporter.extensions import ExtensionRegistry
from exporter.logging.context import get_log_context
from exporter.pipeline import JobRunner
from exporter.stages import (
    ExportStage,
    RequestStage,
    TemplateRenderer,
    TemplateStage,
    TransformStage,
)
from exporter.stages.exceptions import RequestHTTPError
from exporter.stages.sinks import FileSink
from tests.helpers import FixtureTransport

QUEUES_ENDPOINT = "/api/v2/routing/queues"
AGGREGATE_ENDPOINT = "/api/v2/analytics/conversations/aggregates/query"


def make_runner(config, transport, credential_provider, registry=None, template_stage=None):
    renderer = TemplateRenderer(config.base_dir)
    return JobRunner(
        config=config,
        request_stage=RequestStage(transport, credential_provider, renderer, max_retries=0),
        transform_stage=TransformStage(registry),
        template_stage=template_stage or TemplateStage(renderer),
        export_stage=ExportStage(renderer, {"file": FileSink(config.base_dir)}),
    )


@pytest.fixture
def transport(two_queue_data):
    fixture = FixtureTransport()
    fixture.add("GET", QUEUES_ENDPOINT, {**two_queue_data["get_queues"], "pageCount": 1})
    fixture.add("POST", AGGREGATE_ENDPOINT, two_queue_data["daily_voice_queue_agg"])
    return fixture


class TestJobRunnerSuccess:
    """Test complete runs."""

    def test_full_pipeline(self, exporter_config, transport, credential_provider, tmp_path):
        runner = make_runner(exporter_config, transport, credential_provider)

        result = runner.run(exporter_config.get_job("daily_report"), trigger="run-now")

        assert result.succeeded, result.error
        assert result.job_key == "daily_report"
        assert result.job_name == "Daily report"
        assert [(s.kind, s.name) for s in result.stage_results] == [
            ("request", "get_queues"),
            ("request", "daily_voice_queue_agg"),
            ("transform", "prepare_report"),
            ("template", "summary"),
            ("export", "summary_file"),
        ]
        assert all(s.status == "succeeded" for s in result.stage_results)
        assert (tmp_path / "out" / "daily_report.txt").read_text(encoding="utf-8") == "Offered 150"
        assert transport.calls[1]["json_data"]["interval"] == "2025-11-03/2025-11-04"
        assert result.diagnostics is None
        assert result.failed_stage is None

    def test_each_run_gets_fresh_state(self, exporter_config, transport, credential_provider):
        runner = make_runner(exporter_config, transport, credential_provider)
        job = exporter_config.get_job("adhoc")

        first = runner.run(job)
        second = runner.run(job)

        assert first.succeeded and second.succeeded
        assert first.run_id != second.run_id
        assert exporter_config.get_job("adhoc") == job

    def test_configuration_custom_data_overrides_top_level(
        self, config_dict, tmp_path, transport, credential_provider
    ):
        config_dict["configurations"]["yesterday"]["customData"] = {"title": "Yesterday"}
        config_dict["templates"]["summary"]["template"] = "{{ customData.title }}: {{ data.report.totals.offered }}"
        config = parse_config(config_dict, base_dir=tmp_path)

        result = make_runner(config, transport, credential_provider).run(config.get_job("daily_report"))

        assert result.succeeded, result.error
        assert (tmp_path / "out" / "daily_report.txt").read_text(encoding="utf-8") == "Yesterday: 150"

    def test_stages_run_inside_log_context(self, config_dict, tmp_path, transport, credential_provider):
        seen = {}
        registry = ExtensionRegistry()
        registry.register("capture", lambda data: seen.update(get_log_context()))
        config_dict["transforms"]["capture"] = {"extension": "capture"}
        config_dict["jobs"]["adhoc"]["transforms"] = ["capture"]
        config = parse_config(config_dict, base_dir=tmp_path)

        result = make_runner(config, transport, credential_provider, registry=registry).run(
            config.get_job("adhoc")
        )

        assert seen == {"run_id": result.run_id, "job_key": "adhoc", "stage": "transform:capture"}
        assert get_log_context() == {}

    def test_run_logs_start_and_completion(self, exporter_config, transport, credential_provider, caplog):
        runner = make_runner(exporter_config, transport, credential_provider)

        with caplog.at_level(logging.INFO, logger="exporter.pipeline.runner"):
            runner.run(exporter_config.get_job("adhoc"))

        events = [getattr(r, "event", None) for r in caplog.records]
        assert "job.run.started" in events
        assert "job.run.completed" in events


class TestJobRunnerFailures:
    """Test that failures abort only the failing job."""

    def test_unknown_stage_reference(self, config_dict, tmp_path, transport, credential_provider):
        config_dict["jobs"]["adhoc"]["requests"] = ["get_queues", "missing_request"]
        config = parse_config(config_dict, base_dir=tmp_path)

        result = make_runner(config, transport, credential_provider).run(config.get_job("adhoc"))

        assert not result.succeeded
        assert result.error_type == "StageConfigurationError"
        assert "missing_request" in result.error
        assert result.stage_results == []
        assert transport.calls == []

    def test_unknown_configuration(self, config_dict, tmp_path, transport, credential_provider):
        config_dict["jobs"]["adhoc"]["configurations"] = ["tomorrow"]
        config = parse_config(config_dict, base_dir=tmp_path)

        result = make_runner(config, transport, credential_provider).run(config.get_job("adhoc"))

        assert result.status == "failed"
        assert "unknown configuration 'tomorrow'" in result.error

    def test_request_failure_aborts_remaining_stages(
        self, exporter_config, credential_provider, tmp_path, two_queue_data
    ):
        transport = FixtureTransport()
        transport.add("GET", QUEUES_ENDPOINT, {**two_queue_data["get_queues"], "pageCount": 1})
        transport.add(
            "POST",
            AGGREGATE_ENDPOINT,
            RequestHTTPError("HTTP 500: Server Error", status_code=500, url=AGGREGATE_ENDPOINT),
        )
        runner = make_runner(exporter_config, transport, credential_provider)

        result = runner.run(exporter_config.get_job("daily_report"))

        assert result.status == "failed"
        assert result.error_type == "RequestHTTPError"
        assert [s.status for s in result.stage_results] == ["succeeded", "failed"]
        assert result.failed_stage.name == "daily_voice_queue_agg"
        assert result.diagnostics is None
        assert not (tmp_path / "out").exists()

    def test_transform_failure_captures_diagnostics(
        self, config_dict, tmp_path, transport, credential_provider
    ):
        config_dict["transforms"]["prepare_report"] = {
            "extension": "tests.helpers.sample_extensions:explode"
        }
        config = parse_config(config_dict, base_dir=tmp_path)

        result = make_runner(config, transport, credential_provider).run(config.get_job("daily_report"))

        assert result.error_type == "TransformError"
        assert result.failed_stage.kind == "transform"
        assert set(result.diagnostics) == {"get_queues", "daily_voice_queue_agg"}
        assert result.diagnostics["get_queues"]["entities"][0]["id"] == "q1"
        assert len(result.stage_results) == 3

    def test_unexpected_error_is_contained(self, exporter_config, transport, credential_provider, caplog):
        template_stage = Mock()
        template_stage.run.side_effect = RuntimeError("bug in template stage")
        runner = make_runner(exporter_config, transport, credential_provider, template_stage=template_stage)

        with caplog.at_level(logging.ERROR):
            result = runner.run(exporter_config.get_job("daily_report"))

        assert result.error_type == "RuntimeError"
        assert result.failed_stage.kind == "template"
        assert "Unexpected error in template 'summary'" in caplog.text
        assert get_log_context() == {}


def test_from_config_wires_default_stages(exporter_config, credential_provider):
    runner = JobRunner.from_config(exporter_config, EnvironmentConfig(), credentials=credential_provider)

    assert isinstance(runner._stages["request"], RequestStage)
    assert runner._stages["request"].credentials is credential_provider
    assert set(runner._stages["export"].sinks) == {"file", "http", "email"}
