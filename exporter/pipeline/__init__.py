"""Job execution engine: DataBag, run results and the JobRunner."""

from .databag import DataBag
from .models import RunResult, StageResult
from .runner import JobRunner

__all__ = ["DataBag", "JobRunner", "RunResult", "StageResult"]
