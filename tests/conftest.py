"""Shared fixtures for the exporter test suite."""

from typing import Any, Dict
from unittest.mock import Mock

import pytest

from exporter.auth.credentials import BearerToken
from exporter.config.loader import parse_config
from exporter.logging.context import clear_log_context
from exporter.utils.timestamps import utc_now
from tests.helpers import aggregate_result

ENV_VARS = (
    "EXPORTER_CLIENT_ID",
    "EXPORTER_CLIENT_SECRET",
    "EXPORTER_ACCESS_TOKEN",
    "EXPORTER_ENVIRONMENT",
    "SMTP_HOST",
    "SMTP_PORT",
    "SMTP_USER",
    "SMTP_PASS",
    "SMTP_SENDER_NAME",
    "EXPORT_TO_EMAIL",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every exporter-related environment variable."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def config_dict() -> Dict[str, Any]:
    """A small but complete configuration document."""
    return {
        "credentials": {"client_id": "client", "client_secret": "secret"},
        "requests": {
            "get_queues": {
                "method": "GET",
                "endpoint": "/api/v2/routing/queues",
                "pagination": {"type": "page", "page_size": 2, "collect": "entities"},
            },
            "daily_voice_queue_agg": {
                "method": "POST",
                "endpoint": "/api/v2/analytics/conversations/aggregates/query",
                "body": {"interval": "{{ vars.interval }}", "groupBy": ["queueId"]},
            },
        },
        "transforms": {
            "prepare_report": {"extension": "report_card.prepare_report"},
        },
        "templates": {
            "summary": {"template": "Offered {{ data.report.totals.offered }}"},
        },
        "exports": {
            "summary_file": {
                "type": "file",
                "source": "summary",
                "destination": "out/{{ job.key }}.txt",
            },
        },
        "configurations": {
            "yesterday": {"vars": {"interval": "2025-11-03/2025-11-04"}},
        },
        "customData": {"title": "Report"},
        "jobs": {
            "daily_report": {
                "name": "Daily report",
                "cron": "0 6 * * *",
                "configurations": ["yesterday"],
                "requests": ["get_queues", "daily_voice_queue_agg"],
                "transforms": ["prepare_report"],
                "templates": ["summary"],
                "exports": ["summary_file"],
            },
            "adhoc": {"requests": ["get_queues"]},
        },
    }


@pytest.fixture
def exporter_config(config_dict, tmp_path):
    return parse_config(config_dict, base_dir=tmp_path)


@pytest.fixture
def bearer_token():
    return BearerToken(access_token="token-123", issued_at=utc_now(), expires_in=3600)


@pytest.fixture
def credential_provider(bearer_token):
    """CredentialProvider double that always hands out a valid token."""
    provider = Mock()
    provider.get_token.return_value = bearer_token
    return provider


@pytest.fixture
def two_queue_data():
    """DataBag contents for two queues: 100 + 50 offered, 10 + 5 abandoned."""
    return {
        "get_queues": {
            "entities": [
                {"id": "q1", "name": "Support"},
                {"id": "q2", "name": "Sales"},
            ]
        },
        "daily_voice_queue_agg": {
            "results": [
                aggregate_result(
                    "q1",
                    nOffered={"count": 100},
                    tAnswered={"count": 90, "sum": 900},
                    tAbandon={"count": 10, "sum": 300},
                    tHandle={"count": 90, "sum": 27000},
                    oServiceLevel={"ratio": 0.8, "numerator": 72, "denominator": 90},
                ),
                aggregate_result(
                    "q2",
                    nOffered={"count": 50},
                    tAnswered={"count": 45, "sum": 450},
                    tAbandon={"count": 5, "sum": 100},
                    tHandle={"count": 45, "sum": 9000},
                    oServiceLevel={"ratio": 0.8, "numerator": 36, "denominator": 45},
                ),
            ]
        },
    }
