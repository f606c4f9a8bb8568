"""Additional validation utilities for configuration."""

import warnings
from typing import List

from .models import ExporterConfig

STAGE_SECTIONS = ("requests", "transforms", "templates", "exports", "configurations")


def check_for_warnings(config: ExporterConfig) -> List[str]:
    """
    Check a validated configuration for issues that only affect single jobs.

    Unknown stage references and missing credentials do not stop the process;
    the affected job fails when it runs.

    Args:
        config: Validated configuration

    Returns:
        List of warning messages
    """
    warning_messages = []

    for job in config.jobs.values():
        for section in STAGE_SECTIONS:
            known = getattr(config, section)
            for ref in getattr(job, section):
                if ref not in known:
                    warning_messages.append(
                        f"Job '{job.key}' references unknown {section[:-1]} '{ref}'"
                    )

        if not any((job.requests, job.transforms, job.templates, job.exports)):
            warning_messages.append(f"Job '{job.key}' has no stages and will do nothing")

    credentials = config.credentials
    uses_requests = any(job.requests for job in config.jobs.values())
    has_client = credentials.client_id and credentials.client_secret
    if uses_requests and not has_client and not credentials.access_token:
        warning_messages.append(
            "No client credentials or access token configured; request stages will fail"
        )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """Emit warning messages using Python's warnings module."""
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
