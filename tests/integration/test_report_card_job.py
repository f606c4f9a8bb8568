"""End-to-end run of the example report card jobs against canned API responses.

Loads config.example.yaml as shipped, swaps the network transport for
FixtureTransport and the SMTP connection for a mock, and checks the
artifacts the jobs write or send.
"""

import json
import logging
import shutil
from pathlib import Path
from unittest.mock import Mock

import pytest
import yaml

from exporter.config.environment import EnvironmentConfig
from exporter.config.loader import parse_config
from exporter.control import ControlService
from exporter.pipeline import JobRunner
from exporter.scheduler import SchedulerService
from exporter.stages import (
    ExportStage,
    RequestStage,
    TemplateRenderer,
    TemplateStage,
    TransformStage,
)
from exporter.stages.sinks import EmailSink, FileSink
from tests.helpers import FixtureTransport

REPO_ROOT = Path(__file__).parent.parent.parent
FIXTURES = Path(__file__).parent.parent / "fixtures" / "report_card" / "responses.yaml"
TEMPLATE = Path("examples") / "daily_conversation_report_card" / "report_card.html.j2"


@pytest.fixture
def report_config(tmp_path):
    """The example configuration rooted at tmp_path, with its template copied over."""
    (tmp_path / TEMPLATE).parent.mkdir(parents=True)
    shutil.copy(REPO_ROOT / TEMPLATE, tmp_path / TEMPLATE)
    config_dict = yaml.safe_load((REPO_ROOT / "config.example.yaml").read_text(encoding="utf-8"))
    return parse_config(config_dict, base_dir=tmp_path)


@pytest.fixture
def transport():
    return FixtureTransport.from_file(FIXTURES)


@pytest.fixture
def smtp_client():
    return Mock()


@pytest.fixture
def runner(report_config, transport, credential_provider, smtp_client):
    env_config = EnvironmentConfig(smtp_host="smtp.example.com", export_to_email="ops@example.com")
    renderer = TemplateRenderer(report_config.base_dir)
    return JobRunner(
        config=report_config,
        request_stage=RequestStage(transport, credential_provider, renderer, max_retries=0),
        transform_stage=TransformStage(),
        template_stage=TemplateStage(renderer),
        export_stage=ExportStage(
            renderer,
            {
                "file": FileSink(report_config.base_dir),
                "email": EmailSink(env_config, smtp_client=smtp_client),
            },
        ),
    )


def test_report_card_files(report_config, runner, transport, tmp_path):
    result = runner.run(report_config.get_job("daily_conversation_report_card"), trigger="run-now")

    assert result.succeeded, result.error
    assert len(result.stage_results) == 9

    report = json.loads((tmp_path / "output" / "report_card_latest.json").read_text(encoding="utf-8"))
    totals = report["totals"]
    assert totals["offered"] == 165
    assert totals["answered"] == 143
    assert totals["abandoned"] == 22
    assert totals["abandonRatePercent"] == 13.3
    assert totals["asaSeconds"] == 17
    assert totals["ahtSeconds"] == 272
    assert totals["serviceLevelPercent"] == 79

    assert [row["queue"]["name"] for row in report["queues"]] == ["Support", "Sales", "q9"]
    assert [row["serviceLevelPercent"] for row in report["worstQueues"]] == [75, 95, 100]
    assert report["recentAbandons"][0] == {
        "conversationId": "c-0001",
        "conversationStart": "2025-11-03T17:45:10.000Z",
        "queueName": "Support",
        "ani": "tel:+15551230001",
        "dnis": "tel:+18005550100",
    }
    assert report["recentAbandons"][1]["queueName"] == ""

    html_files = list((tmp_path / "output").glob("report_card_*.html"))
    assert len(html_files) == 1
    html = html_files[0].read_text(encoding="utf-8")
    assert "<h1>Daily Conversation Report Card</h1>" in html
    assert "<td>13.3%</td>" in html
    assert "c-0002" in html
    assert "No abandoned conversations" not in html

    aggregate_call = transport.calls[1]
    assert aggregate_call["method"] == "POST"
    interval = aggregate_call["json_data"]["interval"]
    start, end = interval.split("/")
    assert start.endswith("T00:00:00.000Z")
    assert end.endswith("T00:00:00.000Z")
    assert aggregate_call["json_data"]["metrics"][0] == "nOffered"


def test_report_card_email(report_config, runner, smtp_client):
    result = runner.run(report_config.get_job("report_card_email"))

    assert result.succeeded, result.error
    smtp_client.send.assert_called_once()
    message = smtp_client.send.call_args.args[0]
    assert message["Subject"] == "Daily Conversation Report Card - 1 day(s) ago"
    assert message["To"] == "ops@example.com"
    html_part = message.get_body(preferencelist=("html",))
    assert "Support" in html_part.get_content()


def test_report_card_through_control_surface(report_config, runner, caplog):
    caplog.set_level(logging.INFO)
    scheduler = SchedulerService(report_config, runner.run)
    control = ControlService(scheduler)
    try:
        handle = control.execute(["daily_conversation_report_card"])
        assert control.wait(handle, timeout=10)
        output = control.get_output(handle)
    finally:
        control.close()

    assert output["complete"] is True
    assert "Batch complete: 1 succeeded, 0 failed" in output["output"]
    assert (report_config.base_dir / "output" / "report_card_latest.json").exists()
