"""Main entry point for the open data exporter service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import os
import signal
import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

from exporter.config.environment import EnvironmentConfig
from exporter.config.exceptions import ConfigurationError
from exporter.config.loader import load_config
from exporter.config.models import CredentialsConfig, ExporterConfig
from exporter.logging import get_logger
from exporter.logging.config import configure_logging
from exporter.pipeline import JobRunner
from exporter.scheduler import SchedulerService

logger = get_logger(__name__, component="cli")


def parse_job_keys(value: Optional[str]) -> List[str]:
    """Split a comma-separated --jobs value, ignoring blanks."""
    if not value:
        return []
    return [key.strip() for key in value.split(",") if key.strip()]


def load_runtime_config(
    config_path: Optional[Path],
    log_level_override: Optional[str],
    credential_overrides: Optional[dict] = None,
) -> Tuple[ExporterConfig, EnvironmentConfig]:
    """
    Load configuration and apply command-line overrides.

    Priority for the log level and credentials: CLI > environment > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    overrides = {k: v for k, v in (credential_overrides or {}).items() if v}
    if overrides:
        try:
            app_config.credentials = CredentialsConfig.model_validate(
                {**app_config.credentials.model_dump(), **overrides}
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid credential override: {e}") from e

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def format_job_listing(app_config: ExporterConfig, job_keys: Optional[List[str]] = None) -> str:
    """One 'key | cron | name' line per job, limited to job_keys when given."""
    return "\n".join(
        f"{job['key']} | {job['cron']} | {job['name']}"
        for job in app_config.list_jobs(job_keys)
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Open Data Exporter - scheduled API data export jobs"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml, config.json or config/config.yaml)",
    )
    parser.add_argument(
        "--jobs",
        default=None,
        help="Comma-separated job keys to run (default: all jobs)",
    )
    parser.add_argument(
        "--run-now",
        action="store_true",
        help="Run the selected jobs immediately and exit",
    )
    parser.add_argument(
        "--list-jobs",
        action="store_true",
        help="List configured jobs and exit",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    parser.add_argument("--client-id", default=None, help="OAuth client id override")
    parser.add_argument("--client-secret", default=None, help="OAuth client secret override")
    parser.add_argument(
        "--environment",
        default=None,
        help="API environment override (e.g. mypurecloud.com)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the open data exporter.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)

    try:
        app_config, env_config = load_runtime_config(
            args.config,
            args.log_level,
            {
                "client_id": args.client_id,
                "client_secret": args.client_secret,
                "environment": args.environment,
            },
        )

        if args.list_jobs:
            print(format_job_listing(app_config, parse_job_keys(args.jobs)))
            return 0

        configure_logging(
            level=env_config.log_level,
            format_type=app_config.logging.format,
            environment=os.environ.get("ENVIRONMENT", "local"),
        )

        job_keys = parse_job_keys(args.jobs)
        logger.info(
            "Open Data Exporter starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "run_now": args.run_now,
                "job_count": len(app_config.jobs),
            },
        )

        runner = JobRunner.from_config(app_config, env_config)
        shutdown_event = threading.Event()
        scheduler_service = SchedulerService(
            config=app_config,
            run_job=runner.run,
            shutdown_event=shutdown_event,
        )

        if args.run_now:
            results = scheduler_service.run_now(job_keys)
            failed = [result for result in results if not result.succeeded]

            logger.info(
                f"Run completed: {len(results) - len(failed)} succeeded, {len(failed)} failed",
                extra={
                    "event": "service.run_now.completed",
                    "succeeded_count": len(results) - len(failed),
                    "failed_count": len(failed),
                    "uptime_seconds": round(time.time() - start_time, 2),
                },
            )
            return 1 if failed or not results else 0

        if job_keys:
            # Daemon mode with --jobs schedules only the selected jobs
            selected = {job.key: job for job in scheduler_service.resolve_jobs(job_keys)}
            scheduler_service.config = app_config.model_copy(update={"jobs": selected})

        def signal_handler(signum, frame):
            logger.info(
                f"Received signal {signum}, shutting down",
                extra={"event": "service.signal_received", "signal": signum},
            )
            scheduler_service.shutdown(wait=False)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        scheduler_service.start()
        logger.info(
            "Scheduler started. Press Ctrl+C to stop",
            extra={"event": "service.daemon_mode.started"},
        )

        try:
            shutdown_event.wait()
        except KeyboardInterrupt:
            scheduler_service.shutdown(wait=False)

        logger.info(
            "Open Data Exporter stopped",
            extra={
                "event": "service.stopping",
                "uptime_seconds": round(time.time() - start_time, 2),
            },
        )
        return 0

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
