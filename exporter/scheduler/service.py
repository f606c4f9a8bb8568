"""Scheduler service: cron timers per job plus immediate run-now batches."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from exporter.config.models import ExporterConfig, JobSpec
from exporter.logging import get_logger
from exporter.logging.context import log_context
from exporter.pipeline.models import RunResult
from exporter.utils.timestamps import utc_now

from .schedule import CronSchedule, ScheduleError

logger = get_logger(__name__, component="scheduler")

RunFunction = Callable[..., RunResult]


class SchedulerService:
    """
    Wraps APScheduler to trigger job runs on their cron schedules.

    Every scheduled job is an independent APScheduler job on a
    BackgroundScheduler, so runs execute on executor threads and a slow job
    never blocks dispatch of the others. Jobs without a cron only run through
    run_now.
    """

    def __init__(
        self,
        config: ExporterConfig,
        run_job: RunFunction,
        shutdown_event: Optional[threading.Event] = None,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        """
        Initialize the scheduler service.

        Args:
            config: Loaded configuration (read-only)
            run_job: Callable executing one job, e.g. JobRunner.run
            shutdown_event: Optional event to set on shutdown for coordination
            scheduler: Scheduler instance (a UTC BackgroundScheduler by default)
        """
        self.config = config
        self.run_job = run_job
        self.shutdown_event = shutdown_event
        self.skipped: Dict[str, str] = {}

        self.scheduler = scheduler or BackgroundScheduler(
            job_defaults={
                "max_instances": config.advanced.max_concurrent_runs,
                "coalesce": True,  # If a fire is delayed, only execute once
                "misfire_grace_time": 60,
            },
            timezone=timezone.utc,
        )

    def schedule_jobs(self) -> List[str]:
        """
        Register a timer for every job with a cron expression.

        Invalid expressions are logged and that job is skipped; the remaining
        jobs are scheduled regardless.

        Returns:
            Keys of the scheduled jobs
        """
        scheduled = []
        for job in self.config.jobs.values():
            if not job.cron:
                logger.info(
                    f"Job '{job.key}' has no cron; available via run-now only",
                    extra={"event": "scheduler.job.unscheduled", "job_key": job.key},
                )
                continue

            try:
                schedule = CronSchedule(job.cron)
            except ScheduleError as e:
                self.skipped[job.key] = str(e)
                logger.error(
                    f"Skipping job '{job.key}': invalid cron '{job.cron}'",
                    extra={
                        "event": "scheduler.job.invalid_cron",
                        "job_key": job.key,
                        "cron": job.cron,
                        "error": e.message,
                    },
                )
                continue

            self.scheduler.add_job(
                func=self._run_scheduled,
                trigger=schedule.trigger,
                args=[job.key],
                id=job.key,
                name=job.name,
                replace_existing=True,
            )
            scheduled.append(job.key)
            logger.info(
                f"Scheduled job '{job.key}' with cron '{job.cron}'",
                extra={"event": "scheduler.job.scheduled", "job_key": job.key, "cron": job.cron},
            )

        return scheduled

    def start(self) -> List[str]:
        """Register all cron jobs and start the scheduler threads."""
        scheduled = self.schedule_jobs()
        self.scheduler.start()

        logger.info(
            f"Scheduler started with {len(scheduled)} scheduled jobs",
            extra={
                "event": "scheduler.started",
                "scheduled_count": len(scheduled),
                "skipped_count": len(self.skipped),
            },
        )
        for key, next_run in self.get_next_run_times().items():
            logger.info(
                f"Next run of '{key}': {next_run.isoformat() if next_run else 'never'}",
                extra={"event": "scheduler.job.next_run", "job_key": key},
            )
        return scheduled

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler gracefully.

        Args:
            wait: If True, wait for running jobs to complete before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def _run_scheduled(self, job_key: str) -> Optional[RunResult]:
        """Timer callback; isolates the scheduler thread from any job failure."""
        job = self.config.get_job(job_key)
        if job is None:
            logger.error(f"Scheduled job '{job_key}' is no longer configured")
            return None
        try:
            return self.run_job(job, trigger="schedule")
        except Exception as e:
            logger.error(
                f"Unhandled error running job '{job_key}': {e}",
                exc_info=True,
                extra={"event": "scheduler.job.error", "job_key": job_key},
            )
            return None

    def resolve_jobs(self, job_keys: Optional[Iterable[str]] = None) -> List[JobSpec]:
        """Look up jobs by key; None or empty means every configured job."""
        keys = [key for key in (job_keys or []) if key]
        if not keys:
            return list(self.config.jobs.values())

        jobs = []
        for key in keys:
            job = self.config.get_job(key)
            if job is None:
                logger.warning(
                    f"Unknown job '{key}' requested; skipping",
                    extra={"event": "scheduler.run_now.unknown_job", "job_key": key},
                )
                continue
            jobs.append(job)
        return jobs

    def run_now(
        self,
        job_keys: Optional[Iterable[str]] = None,
        batch_id: Optional[str] = None,
    ) -> List[RunResult]:
        """
        Run jobs immediately, concurrently, without touching the timers.

        Args:
            job_keys: Keys to run; None or empty runs every configured job
            batch_id: Identifier bound into the log context of every run

        Returns:
            RunResults in the order the jobs were requested
        """
        jobs = self.resolve_jobs(job_keys)
        if not jobs:
            logger.warning("No jobs to run", extra={"event": "scheduler.run_now.empty"})
            return []

        logger.info(
            f"Running {len(jobs)} jobs now",
            extra={
                "event": "scheduler.run_now",
                "job_keys": [job.key for job in jobs],
                "batch_id": batch_id,
            },
        )

        workers = min(self.config.advanced.run_now_workers, len(jobs))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="run-now") as executor:
            futures = [executor.submit(self._run_in_batch, job, batch_id) for job in jobs]
            return [future.result() for future in futures]

    def _run_in_batch(self, job: JobSpec, batch_id: Optional[str]) -> RunResult:
        # Context vars do not follow work into pool threads; rebind here
        fields = {"batch_id": batch_id} if batch_id else {}
        with log_context(**fields):
            started_at = utc_now()
            try:
                return self.run_job(job, trigger="run-now")
            except Exception as e:
                logger.error(
                    f"Unhandled error running job '{job.key}': {e}",
                    exc_info=True,
                    extra={"event": "scheduler.job.error", "job_key": job.key},
                )
                return RunResult(
                    run_id="",
                    job_key=job.key,
                    job_name=job.name,
                    started_at=started_at,
                    finished_at=utc_now(),
                    status="failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_times(self) -> Dict[str, Optional[datetime]]:
        """Next fire time of every scheduled job, keyed by job key."""
        return {job.id: getattr(job, "next_run_time", None) for job in self.scheduler.get_jobs()}
