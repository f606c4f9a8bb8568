"""Job execution: run one job's stages in order over a fresh DataBag."""

import copy
import time
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

from exporter.auth.credentials import CredentialProvider
from exporter.config.environment import EnvironmentConfig
from exporter.config.models import ExporterConfig, JobSpec
from exporter.extensions.registry import ExtensionRegistry
from exporter.logging import get_logger
from exporter.logging.context import log_context
from exporter.stages import (
    ApiTransport,
    ExportStage,
    RequestStage,
    StageConfigurationError,
    StageContext,
    StageError,
    TemplateRenderer,
    TemplateStage,
    TransformError,
    TransformStage,
    build_default_sinks,
)
from exporter.utils.timestamps import utc_now

from .databag import DataBag
from .models import RunResult, StageResult

logger = get_logger(__name__, component="runner")

# Stage kinds in execution order, with the config section holding their definitions
STAGE_ORDER = (
    ("request", "requests"),
    ("transform", "transforms"),
    ("template", "templates"),
    ("export", "exports"),
)


class JobRunner:
    """
    Executes job instances.

    The runner holds only shared, read-only collaborators; all per-run state
    (the job copy, the DataBag, the rendering context) lives in ``run``. It is
    therefore safe to call ``run`` from several threads at once.

    A run never raises: the first failing stage aborts the remaining stages of
    that job and the failure is reported in the RunResult.
    """

    def __init__(
        self,
        config: ExporterConfig,
        request_stage: RequestStage,
        transform_stage: TransformStage,
        template_stage: TemplateStage,
        export_stage: ExportStage,
    ):
        self.config = config
        self._stages: Dict[str, Any] = {
            "request": request_stage,
            "transform": transform_stage,
            "template": template_stage,
            "export": export_stage,
        }

    @classmethod
    def from_config(
        cls,
        config: ExporterConfig,
        env_config: EnvironmentConfig,
        credentials: Optional[CredentialProvider] = None,
        registry: Optional[ExtensionRegistry] = None,
    ) -> "JobRunner":
        """Wire the default transport, renderer, stages and sinks."""
        creds = config.credentials
        transport = ApiTransport(
            base_url=creds.api_base_url,
            timeout=creds.timeout,
            user_agent=config.advanced.user_agent,
        )
        provider = credentials or CredentialProvider(creds, user_agent=config.advanced.user_agent)
        renderer = TemplateRenderer(config.base_dir)

        return cls(
            config=config,
            request_stage=RequestStage.from_config(transport, provider, renderer, config.advanced),
            transform_stage=TransformStage(registry),
            template_stage=TemplateStage(renderer),
            export_stage=ExportStage(
                renderer, build_default_sinks(config.base_dir, env_config, creds.timeout)
            ),
        )

    def run(self, job_spec: JobSpec, trigger: str = "manual") -> RunResult:
        """
        Execute one instance of a job.

        Args:
            job_spec: Job definition; never mutated
            trigger: What started the run (schedule, run-now, control)

        Returns:
            RunResult describing the outcome
        """
        job = job_spec.model_copy(deep=True)
        run_id = uuid4().hex
        started_at = utc_now()
        stage_results: List[StageResult] = []

        with log_context(run_id=run_id, job_key=job.key):
            logger.info(
                f"Job '{job.name}' started",
                extra={"event": "job.run.started", "trigger": trigger},
            )

            data = DataBag()
            error: Optional[Exception] = None
            diagnostics: Optional[Dict[str, Any]] = None

            try:
                context = self._build_context(job, run_id, data, started_at)
                for kind, definition, stage in self._plan(job):
                    result = self._run_stage(kind, definition, stage, context)
                    stage_results.append(result)
            except _StageFailed as failed:
                stage_results.append(failed.result)
                error = failed.error
                if isinstance(error, TransformError):
                    diagnostics = copy.deepcopy(dict(data))
            except StageError as e:
                # Planning failures (missing definitions) happen before any stage runs
                error = e

            finished_at = utc_now()
            result = RunResult(
                run_id=run_id,
                job_key=job.key,
                job_name=job.name,
                started_at=started_at,
                finished_at=finished_at,
                stage_results=stage_results,
                status="failed" if error else "succeeded",
                error=str(error) if error else None,
                error_type=type(error).__name__ if error else None,
                diagnostics=diagnostics,
            )

            if error:
                logger.error(
                    f"Job '{job.name}' failed: {error}",
                    extra={
                        "event": "job.run.failed",
                        "error_type": result.error_type,
                        "duration_ms": int(result.duration_seconds * 1000),
                        "stage_count": len(stage_results),
                    },
                )
            else:
                logger.info(
                    f"Job '{job.name}' completed",
                    extra={
                        "event": "job.run.completed",
                        "duration_ms": int(result.duration_seconds * 1000),
                        "stage_count": len(stage_results),
                    },
                )

            return result

    def _build_context(self, job: JobSpec, run_id: str, data: DataBag, started_at) -> StageContext:
        """Merge top-level customData with the job's configuration sets, in order."""
        variables: Dict[str, Any] = {}
        custom_data: Dict[str, Any] = copy.deepcopy(self.config.custom_data)

        for name in job.configurations:
            configuration = self.config.configurations.get(name)
            if configuration is None:
                raise StageConfigurationError(
                    f"Job '{job.key}' references unknown configuration '{name}'"
                )
            variables.update(copy.deepcopy(configuration.vars))
            custom_data.update(copy.deepcopy(configuration.custom_data))

        return StageContext(
            run_id=run_id,
            job=job,
            data=data,
            vars=variables,
            custom_data=custom_data,
            started_at=started_at,
        )

    def _plan(self, job: JobSpec) -> List[Tuple[str, Any, Any]]:
        """Resolve every stage reference up front so a typo fails before any request."""
        plan = []
        for kind, section in STAGE_ORDER:
            definitions = getattr(self.config, section)
            for name in getattr(job, section):
                definition = definitions.get(name)
                if definition is None:
                    raise StageConfigurationError(
                        f"Job '{job.key}' references unknown {kind} '{name}'"
                    )
                plan.append((kind, definition, self._stages[kind]))
        return plan

    def _run_stage(self, kind: str, definition: Any, stage: Any, context: StageContext) -> StageResult:
        start = time.monotonic()
        with log_context(stage=f"{kind}:{definition.name}"):
            try:
                stage.run(definition, context)
            except StageError as e:
                raise _StageFailed(
                    StageResult(
                        kind=kind,
                        name=definition.name,
                        status="failed",
                        duration_seconds=time.monotonic() - start,
                        error=str(e),
                    ),
                    e,
                ) from e
            except Exception as e:
                logger.error(
                    f"Unexpected error in {kind} '{definition.name}': {e}",
                    exc_info=True,
                    extra={"event": "stage.unexpected_error", "error_type": type(e).__name__},
                )
                raise _StageFailed(
                    StageResult(
                        kind=kind,
                        name=definition.name,
                        status="failed",
                        duration_seconds=time.monotonic() - start,
                        error=str(e),
                    ),
                    e,
                ) from e

        return StageResult(kind=kind, name=definition.name, duration_seconds=time.monotonic() - start)


class _StageFailed(Exception):
    """Carries a failed stage's result out of the stage loop."""

    def __init__(self, result: StageResult, error: Exception):
        super().__init__(str(error))
        self.result = result
        self.error = error

