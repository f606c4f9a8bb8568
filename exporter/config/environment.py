"""Environment variable loading and validation."""

import os
from typing import Optional

from .exceptions import ConfigurationError
from .models import CredentialsConfig


class EnvironmentConfig:
    """Environment variable configuration holder.

    Holds secrets and deployment settings that do not belong in the job
    configuration file: credential overrides, SMTP settings for the email
    export sink, and the log level.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        access_token: Optional[str] = None,
        api_environment: Optional[str] = None,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        smtp_user: Optional[str] = None,
        smtp_pass: Optional[str] = None,
        smtp_sender_name: Optional[str] = None,
        export_to_email: Optional[str] = None,
        log_level: Optional[str] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.access_token = access_token
        self.api_environment = api_environment
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port or 587
        self.smtp_user = smtp_user
        self.smtp_pass = smtp_pass
        self.smtp_sender_name = smtp_sender_name or "Open Data Exporter"
        self.export_to_email = export_to_email
        self.log_level = log_level

    def apply_to_credentials(self, credentials: CredentialsConfig) -> CredentialsConfig:
        """Return credentials with environment overrides applied."""
        overrides = {}
        if self.client_id:
            overrides["client_id"] = self.client_id
        if self.client_secret:
            overrides["client_secret"] = self.client_secret
        if self.access_token:
            overrides["access_token"] = self.access_token
        if self.api_environment:
            overrides["environment"] = self.api_environment
        if not overrides:
            return credentials
        return CredentialsConfig.model_validate({**credentials.model_dump(), **overrides})


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Optional environment variables:
    - EXPORTER_CLIENT_ID / EXPORTER_CLIENT_SECRET: override configured credentials
    - EXPORTER_ACCESS_TOKEN: pre-issued bearer token
    - EXPORTER_ENVIRONMENT: API environment domain (e.g. mypurecloud.com)
    - SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASS, SMTP_SENDER_NAME: email sink
    - EXPORT_TO_EMAIL: default recipients for email exports
    - LOG_LEVEL: override log level

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If variables are present but invalid
    """
    errors = []

    smtp_port_str = os.getenv("SMTP_PORT")
    smtp_user = os.getenv("SMTP_USER")
    smtp_pass = os.getenv("SMTP_PASS")
    log_level = os.getenv("LOG_LEVEL")

    smtp_port = None
    if smtp_port_str:
        try:
            smtp_port = int(smtp_port_str)
            if smtp_port < 1 or smtp_port > 65535:
                errors.append(f"Invalid SMTP_PORT: {smtp_port}. Must be between 1 and 65535.")
        except ValueError:
            errors.append(f"Invalid SMTP_PORT: '{smtp_port_str}'. Must be a valid integer.")

    if log_level:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if log_level.upper() not in valid_levels:
            errors.append(
                f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(valid_levels)}"
            )

    if smtp_user and not smtp_pass:
        errors.append("SMTP_USER is set but SMTP_PASS is not. Both must be set for authentication.")
    elif smtp_pass and not smtp_user:
        errors.append("SMTP_PASS is set but SMTP_USER is not. Both must be set for authentication.")

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your settings",
                "Verify SMTP_PORT is a number between 1 and 65535",
            ],
        )

    return EnvironmentConfig(
        client_id=os.getenv("EXPORTER_CLIENT_ID"),
        client_secret=os.getenv("EXPORTER_CLIENT_SECRET"),
        access_token=os.getenv("EXPORTER_ACCESS_TOKEN"),
        api_environment=os.getenv("EXPORTER_ENVIRONMENT"),
        smtp_host=os.getenv("SMTP_HOST"),
        smtp_port=smtp_port,
        smtp_user=smtp_user,
        smtp_pass=smtp_pass,
        smtp_sender_name=os.getenv("SMTP_SENDER_NAME"),
        export_to_email=os.getenv("EXPORT_TO_EMAIL"),
        log_level=log_level.upper() if log_level else None,
    )
