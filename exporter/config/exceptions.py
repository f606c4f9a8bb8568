"""Configuration errors.

Only configuration problems found at startup stop the process. Errors raised
for a single job definition (a bad cron expression, say) are reported and
the job is skipped.
"""

from pathlib import Path
from typing import List, Optional, Union


class ConfigurationError(Exception):
    """
    Raised when configuration cannot be loaded or does not validate.

    Carries the individual validation errors, suggestions for fixing them
    and, once known, the file the configuration was read from. ``str()``
    of the exception is the full report printed by the CLI.
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        suggestions: Optional[List[str]] = None,
        source: Optional[Union[str, Path]] = None,
    ):
        self.message = message
        self.errors = errors or []
        self.suggestions = suggestions or []
        self.source = Path(source) if source is not None else None
        super().__init__(self._format_message())

    def attach_source(self, source: Union[str, Path]) -> None:
        """Record the configuration file the error was found in."""
        self.source = Path(source)
        self.args = (self._format_message(),)

    def _format_message(self) -> str:
        header = self.message
        if self.source is not None:
            header = f"{header} ({self.source})"
        lines = [header]

        if self.errors:
            lines.append("\nValidation Errors:")
            lines.extend(f"  {number}. {error}" for number, error in enumerate(self.errors, 1))

        if self.suggestions:
            lines.append("\nSuggestions:")
            lines.extend(f"  - {suggestion}" for suggestion in self.suggestions)

        return "\n".join(lines)


class ScheduleError(ConfigurationError):
    """A job's cron expression cannot be parsed."""

    def __init__(self, expression: str, reason: str, suggestions: Optional[List[str]] = None):
        self.expression = expression
        super().__init__(
            f"Invalid cron expression '{expression}'",
            errors=[reason],
            suggestions=suggestions
            or ["Use 'minute hour day month weekday', e.g. '0 6 * * *' (0 is Sunday)"],
        )
