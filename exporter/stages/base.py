"""Per-run context shared by every stage of a job."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, MutableMapping

from exporter.config.models import JobSpec
from exporter.utils.timestamps import utc_now


@dataclass
class StageContext:
    """Everything a stage may read or write during one run.

    Attributes:
        run_id: Opaque identifier of the run
        job: The run's private copy of the job definition
        data: The run's DataBag
        vars: Variables merged from the job's configuration sets
        custom_data: Top-level customData merged with the sets' customData
        started_at: UTC time the run started
    """

    run_id: str
    job: JobSpec
    data: MutableMapping[str, Any]
    vars: Dict[str, Any] = field(default_factory=dict)
    custom_data: Dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=utc_now)

    def template_variables(self) -> Dict[str, Any]:
        """Variables visible to every Jinja2 template of the run."""
        return {
            "data": self.data,
            "vars": self.vars,
            "customData": self.custom_data,
            "job": {"key": self.job.key, "name": self.job.name},
            "run": {"id": self.run_id, "started_at": self.started_at},
            "now": utc_now(),
        }
