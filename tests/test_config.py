"""Tests for configuration loading, validation and environment overrides."""

import json
import warnings

import pytest
import yaml

from exporter.config import (
    ConfigurationError,
    CredentialsConfig,
    ExporterConfig,
    ScheduleError,
    load_config,
    load_environment_config,
    parse_config,
)
from exporter.config.environment import EnvironmentConfig
from exporter.config.validators import check_for_warnings


class TestConfigurationLoading:
    """Test configuration loading from YAML and JSON files."""

    def test_load_yaml_config(self, tmp_path, clean_env, config_dict):
        """Test loading a valid YAML configuration file."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.safe_dump(config_dict))

        app_config, env_config = load_config(config_file)

        assert set(app_config.jobs) == {"daily_report", "adhoc"}
        assert app_config.base_dir == tmp_path.resolve()
        assert app_config.requests["get_queues"].name == "get_queues"
        assert app_config.requests["get_queues"].pagination.type == "page"
        assert app_config.custom_data == {"title": "Report"}
        assert isinstance(env_config, EnvironmentConfig)

    def test_load_json_config(self, tmp_path, clean_env, config_dict):
        """Test that JSON configs with tab indentation parse."""
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps(config_dict, indent="\t"))

        app_config, _ = load_config(config_file)

        assert app_config.jobs["daily_report"].cron == "0 6 * * *"

    def test_config_file_not_found(self, tmp_path, clean_env):
        """Test error when config file doesn't exist."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(tmp_path / "nonexistent.yaml")

        assert "not found" in str(exc_info.value).lower()

    def test_invalid_yaml_syntax(self, tmp_path, clean_env):
        """Test error when YAML syntax is invalid."""
        invalid_yaml = tmp_path / "invalid.yaml"
        invalid_yaml.write_text("jobs:\n  - name: 'test\n    invalid yaml")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(invalid_yaml)

        assert "parse" in str(exc_info.value).lower()

    def test_validation_error_names_the_file(self, tmp_path, clean_env, config_dict):
        del config_dict["jobs"]
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.safe_dump(config_dict))

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(config_file)

        assert exc_info.value.source == config_file
        assert str(exc_info.value).startswith(f"Configuration validation failed ({config_file})")
        assert "Missing required field: jobs" in str(exc_info.value)

    def test_environment_overrides_credentials(self, tmp_path, clean_env, config_dict):
        """Test EXPORTER_* variables override the credentials block."""
        clean_env.setenv("EXPORTER_CLIENT_ID", "env-client")
        clean_env.setenv("EXPORTER_ENVIRONMENT", "https://api.mypurecloud.ie")
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.safe_dump(config_dict))

        app_config, _ = load_config(config_file)

        assert app_config.credentials.client_id == "env-client"
        assert app_config.credentials.client_secret == "secret"
        assert app_config.credentials.environment == "mypurecloud.ie"
        assert app_config.credentials.api_base_url == "https://api.mypurecloud.ie"


class TestConfigurationValidation:
    """Test configuration validation rules."""

    def test_empty_document(self):
        with pytest.raises(ConfigurationError, match="empty"):
            parse_config({})

    def test_non_mapping_document(self):
        with pytest.raises(ConfigurationError, match="mapping"):
            parse_config(["jobs"])

    def test_missing_jobs(self, config_dict):
        """Test error when jobs field is missing."""
        del config_dict["jobs"]

        with pytest.raises(ConfigurationError) as exc_info:
            parse_config(config_dict)

        assert "Missing required field: jobs" in str(exc_info.value)

    def test_template_requires_exactly_one_source(self, config_dict):
        config_dict["templates"]["summary"]["file"] = "summary.j2"

        with pytest.raises(ConfigurationError) as exc_info:
            parse_config(config_dict)

        assert "exactly one of" in str(exc_info.value)

    def test_file_export_requires_destination(self, config_dict):
        del config_dict["exports"]["summary_file"]["destination"]

        with pytest.raises(ConfigurationError, match="requires a destination"):
            parse_config(config_dict)

    def test_invalid_pagination_type(self, config_dict):
        config_dict["requests"]["get_queues"]["pagination"]["type"] = "offset"

        with pytest.raises(ConfigurationError) as exc_info:
            parse_config(config_dict)

        assert "pagination" in str(exc_info.value)

    def test_method_is_case_insensitive(self, config_dict):
        config_dict["requests"]["get_queues"]["method"] = "get"

        app_config = parse_config(config_dict)

        assert app_config.requests["get_queues"].method == "GET"


class TestJobSpec:
    """Test job definitions and listings."""

    def test_job_name_defaults_to_key(self, exporter_config):
        assert exporter_config.jobs["adhoc"].name == "adhoc"
        assert exporter_config.jobs["adhoc"].key == "adhoc"

    def test_blank_cron_is_none(self, config_dict):
        config_dict["jobs"]["adhoc"]["cron"] = "   "

        app_config = parse_config(config_dict)

        assert app_config.jobs["adhoc"].cron is None

    def test_list_jobs(self, exporter_config):
        assert exporter_config.list_jobs() == [
            {"key": "daily_report", "name": "Daily report", "cron": "0 6 * * *"},
            {"key": "adhoc", "name": "adhoc", "cron": "no-cron"},
        ]

    def test_job_spec_is_immutable(self, exporter_config):
        job = exporter_config.get_job("daily_report")
        with pytest.raises(Exception):
            job.name = "changed"

    def test_get_unknown_job(self, exporter_config):
        assert exporter_config.get_job("missing") is None


class TestWarnings:
    """Test soft configuration warnings."""

    def test_unknown_stage_reference_warns(self, config_dict):
        config_dict["jobs"]["adhoc"]["transforms"] = ["does_not_exist"]
        app_config = parse_config(config_dict)

        messages = check_for_warnings(app_config)

        assert "Job 'adhoc' references unknown transform 'does_not_exist'" in messages

    def test_missing_credentials_warns(self, config_dict):
        config_dict["credentials"] = {}
        app_config = parse_config(config_dict)

        messages = check_for_warnings(app_config)

        assert any("No client credentials" in m for m in messages)

    def test_warnings_emitted_on_load(self, tmp_path, clean_env, config_dict):
        config_dict["jobs"]["empty"] = {}
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.safe_dump(config_dict))

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            load_config(config_file)

        assert any("has no stages" in str(w.message) for w in caught)


class TestEnvironmentVariables:
    """Test environment variable loading."""

    def test_defaults(self, clean_env):
        env_config = load_environment_config()

        assert env_config.smtp_port == 587
        assert env_config.smtp_sender_name == "Open Data Exporter"
        assert env_config.log_level is None

    def test_invalid_smtp_port(self, clean_env):
        clean_env.setenv("SMTP_PORT", "not-a-port")

        with pytest.raises(ConfigurationError, match="SMTP_PORT"):
            load_environment_config()

    def test_invalid_log_level(self, clean_env):
        clean_env.setenv("LOG_LEVEL", "LOUD")

        with pytest.raises(ConfigurationError, match="LOG_LEVEL"):
            load_environment_config()

    def test_smtp_user_without_password(self, clean_env):
        clean_env.setenv("SMTP_USER", "user@example.com")

        with pytest.raises(ConfigurationError, match="SMTP_PASS"):
            load_environment_config()

    def test_apply_to_credentials_without_overrides_returns_same(self):
        credentials = CredentialsConfig(client_id="a", client_secret="b")

        assert EnvironmentConfig().apply_to_credentials(credentials) is credentials

    def test_log_level_is_upper_cased(self, clean_env):
        clean_env.setenv("LOG_LEVEL", "debug")

        assert load_environment_config().log_level == "DEBUG"


def test_exporter_config_requires_at_least_one_job():
    with pytest.raises(Exception):
        ExporterConfig.model_validate({"jobs": {}})


def test_schedule_error_report():
    error = ScheduleError("0 6 * *", "Expected 5 or 6 fields, got 4")

    assert isinstance(error, ConfigurationError)
    assert error.expression == "0 6 * *"
    assert error.errors == ["Expected 5 or 6 fields, got 4"]
    assert str(error).splitlines()[0] == "Invalid cron expression '0 6 * *'"
