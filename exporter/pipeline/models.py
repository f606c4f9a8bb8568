"""Data models for job run tracking and reporting."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class StageResult:
    """
    Outcome of one stage within a job run.

    Attributes:
        kind: Stage kind (request, transform, template, export)
        name: Name of the stage definition
        status: "succeeded" or "failed"
        duration_seconds: Time spent in the stage
        error: Error message if the stage failed
    """

    kind: str
    name: str
    status: str = "succeeded"
    duration_seconds: float = 0.0
    error: Optional[str] = None


@dataclass
class RunResult:
    """
    Result of executing one job instance.

    Attributes:
        run_id: Opaque run identifier
        job_key: Key of the job that ran
        job_name: Display name of the job
        started_at: UTC timestamp when the run began
        finished_at: UTC timestamp when the run completed
        duration_seconds: Total time for the run
        stage_results: Per-stage outcomes, in execution order
        status: "succeeded" or "failed"
        error: Error message of the failing stage
        error_type: Exception class name of the failure
        diagnostics: Snapshot of the DataBag when a transform failed
    """

    run_id: str
    job_key: str
    job_name: str
    started_at: datetime
    finished_at: datetime
    duration_seconds: float = 0.0
    stage_results: List[StageResult] = field(default_factory=list)
    status: str = "succeeded"
    error: Optional[str] = None
    error_type: Optional[str] = None
    diagnostics: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        """Compute duration if not set."""
        if self.duration_seconds == 0.0:
            self.duration_seconds = (self.finished_at - self.started_at).total_seconds()

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    @property
    def failed_stage(self) -> Optional[StageResult]:
        for stage in self.stage_results:
            if stage.status == "failed":
                return stage
        return None
