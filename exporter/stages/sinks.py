"""Delivery sinks for rendered artifacts: file, HTTP and SMTP email.

SMTPClient wraps smtplib with TLS/SSL negotiation, authentication and
connection cleanup; factories are injectable so tests never open sockets.
"""

import json
import logging
import smtplib
import ssl
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests
from email_validator import EmailNotValidError, validate_email

from exporter.config.environment import EnvironmentConfig
from exporter.config.models import ExportDef

from .exceptions import ExportError

logger = logging.getLogger(__name__)


def serialize_artifact(artifact: Any) -> str:
    """Text artifacts pass through; structured ones become indented JSON."""
    if isinstance(artifact, str):
        return artifact
    return json.dumps(artifact, indent=2, default=str)


class FileSink:
    """Writes an artifact to a path, creating parent directories."""

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()

    def deliver(self, export_def: ExportDef, artifact: Any, destination: str, **_: Any) -> str:
        path = Path(destination)
        if not path.is_absolute():
            path = self.base_dir / path

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(serialize_artifact(artifact), encoding="utf-8")
        except OSError as e:
            raise ExportError(f"Export '{export_def.name}' could not write {path}: {e}") from e

        logger.debug(f"Wrote artifact '{export_def.source}' to {path}")
        return str(path)


class HttpSink:
    """POSTs or PUTs an artifact to a URL."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: int = 30):
        self._session = session or requests.Session()
        self.timeout = timeout

    def deliver(self, export_def: ExportDef, artifact: Any, destination: str, **_: Any) -> str:
        headers: Dict[str, str] = dict(export_def.headers)
        kwargs: Dict[str, Any] = {}
        if isinstance(artifact, str):
            headers.setdefault("Content-Type", export_def.content_type or "text/plain; charset=utf-8")
            kwargs["data"] = artifact.encode("utf-8")
        else:
            if export_def.content_type:
                headers.setdefault("Content-Type", export_def.content_type)
            kwargs["json"] = artifact

        try:
            response = self._session.request(
                method=export_def.method,
                url=destination,
                headers=headers,
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.RequestException as e:
            raise ExportError(f"Export '{export_def.name}' to {destination} failed: {e}") from e

        if response.status_code >= 400:
            raise ExportError(
                f"Export '{export_def.name}' to {destination} failed: "
                f"HTTP {response.status_code}: {response.reason}"
            )

        logger.debug(f"Delivered artifact '{export_def.source}' to {destination} ({response.status_code})")
        return destination


class SMTPClient:
    """Wrapper around smtplib for sending email messages.

    Handles connection lifecycle, TLS/SSL negotiation and authentication.
    Designed to be easily mockable for testing.
    """

    def __init__(
        self,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
    ):
        """Initialize SMTP client with optional factory injection.

        Args:
            smtp_factory: Factory function for creating SMTP instances (for mocking)
            smtp_ssl_factory: Factory function for creating SMTP_SSL instances (for mocking)
        """
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL

    def send(self, message: EmailMessage, env_config: EnvironmentConfig, use_tls: bool = True) -> None:
        """Send an email message via SMTP.

        Raises:
            ExportError: If message delivery fails
        """
        if not env_config.smtp_host:
            raise ExportError("SMTP_HOST is not configured; cannot send email exports")

        smtp = None
        try:
            if env_config.smtp_port == 465:
                # Port 465: implicit TLS
                logger.debug(f"Connecting to {env_config.smtp_host}:{env_config.smtp_port} with implicit TLS")
                context = ssl.create_default_context()
                smtp = self.smtp_ssl_factory(env_config.smtp_host, env_config.smtp_port, context=context)
            else:
                logger.debug(f"Connecting to {env_config.smtp_host}:{env_config.smtp_port}")
                smtp = self.smtp_factory(env_config.smtp_host, env_config.smtp_port)
                if use_tls:
                    logger.debug("Upgrading connection with STARTTLS")
                    smtp.starttls(context=ssl.create_default_context())

            if env_config.smtp_user and env_config.smtp_pass:
                logger.debug(f"Authenticating as {env_config.smtp_user}")
                smtp.login(env_config.smtp_user, env_config.smtp_pass)

            smtp.send_message(message)
            logger.debug(f"Message sent successfully to {message['To']}")

        except smtplib.SMTPException as e:
            raise ExportError(f"SMTP error during message delivery: {e}") from e
        except OSError as e:
            raise ExportError(f"Network error during SMTP connection: {e}") from e
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.warning(f"Error closing SMTP connection: {e}")


def parse_recipients(recipient_string: str) -> List[str]:
    """Parse and validate comma-separated email addresses.

    Raises:
        ValueError: If any address is invalid or none are given
    """
    recipients = []
    for email in (part.strip() for part in recipient_string.split(",")):
        if not email:
            continue
        try:
            validated = validate_email(email, check_deliverability=False)
        except EmailNotValidError as e:
            raise ValueError(f"Invalid email address '{email}' - {e}") from e
        recipients.append(validated.normalized)

    if not recipients:
        raise ValueError("No valid email addresses found in recipients")

    return recipients


def build_sender_address(env_config: EnvironmentConfig) -> str:
    """Use SMTP_SENDER_NAME with SMTP_USER, or noreply@SMTP_HOST without a user."""
    sender_email = env_config.smtp_user or f"noreply@{env_config.smtp_host}"
    return f"{env_config.smtp_sender_name} <{sender_email}>"


class EmailSink:
    """Sends an artifact as the body of an email."""

    def __init__(self, env_config: EnvironmentConfig, smtp_client: Optional[SMTPClient] = None):
        self.env_config = env_config
        self.smtp_client = smtp_client or SMTPClient()

    def deliver(
        self,
        export_def: ExportDef,
        artifact: Any,
        destination: Optional[str] = None,
        subject: Optional[str] = None,
        **_: Any,
    ) -> str:
        recipient_string = export_def.recipients or destination or self.env_config.export_to_email
        if not recipient_string:
            raise ExportError(
                f"Export '{export_def.name}' has no recipients; set 'recipients' or EXPORT_TO_EMAIL"
            )

        try:
            recipients = parse_recipients(recipient_string)
        except ValueError as e:
            raise ExportError(f"Export '{export_def.name}': {e}") from e

        message = EmailMessage()
        message["Subject"] = subject or export_def.name
        message["From"] = build_sender_address(self.env_config)
        message["To"] = ", ".join(recipients)

        body = serialize_artifact(artifact)
        if export_def.html and isinstance(artifact, str):
            message.set_content("This report is best viewed in an HTML capable mail client.")
            message.add_alternative(body, subtype="html")
        else:
            message.set_content(body)

        self.smtp_client.send(message, self.env_config)
        return ", ".join(recipients)
