"""Jinja2 rendering shared by request and template stages.

Request endpoints and bodies, template views, export paths and email
subjects are all Jinja2 templates evaluated against the run's variables.
"""

import logging
from datetime import datetime, time, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError,
    select_autoescape,
)

from exporter.utils.timestamps import ensure_utc, format_timestamp, utc_now

from .exceptions import TemplateRenderError

logger = logging.getLogger(__name__)


def day_interval(days_ago: int = 1, days: int = 1, now: Optional[datetime] = None) -> str:
    """ISO-8601 interval covering whole UTC days, e.g. yesterday by default.

    Naive datetimes are treated as UTC; aware ones are converted first.

    Example:
        >>> day_interval(now=datetime(2025, 11, 4, 15, 0, tzinfo=timezone.utc))
        '2025-11-03T00:00:00.000Z/2025-11-04T00:00:00.000Z'
    """
    moment = ensure_utc(now) if now is not None else utc_now()
    start = datetime.combine(moment.date() - timedelta(days=days_ago), time.min, tzinfo=timezone.utc)
    end = start + timedelta(days=days)
    fmt = "%Y-%m-%dT%H:%M:%S.000Z"
    return f"{start.strftime(fmt)}/{end.strftime(fmt)}"


class TemplateRenderer:
    """Renders inline and file templates with strict undefined checking.

    File templates are resolved relative to ``base_dir`` (the directory of
    the configuration file) and cached by the Jinja2 environment.
    """

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = Path(base_dir) if base_dir else Path.cwd()
        self.env = Environment(
            loader=FileSystemLoader(str(self.base_dir)),
            # Inline strings are URLs, JSON bodies and subjects: never escaped
            autoescape=select_autoescape(["html", "htm", "xml", "html.j2"], default_for_string=False),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )
        self.env.globals.update(day_interval=day_interval, timedelta=timedelta)
        self.env.filters["timestamp"] = format_timestamp

        logger.debug(f"Initialized TemplateRenderer with templates from {self.base_dir}")

    def render_string(self, source: str, context: Dict[str, Any]) -> str:
        """Render an inline template string.

        Raises:
            TemplateRenderError: If the template fails to compile or render
        """
        try:
            return self.env.from_string(source).render(context)
        except TemplateError as e:
            raise TemplateRenderError(f"Template rendering failed: {e}") from e

    def render_file(self, path: str, context: Dict[str, Any]) -> str:
        """Render a template file relative to base_dir.

        Raises:
            TemplateRenderError: If the file is missing or rendering fails
        """
        try:
            template = self.env.get_template(Path(path).as_posix())
            return template.render(context)
        except TemplateError as e:
            raise TemplateRenderError(f"Template '{path}' failed: {e}") from e

    def render_tree(self, value: Any, context: Dict[str, Any]) -> Any:
        """Render every string inside a JSON-like tree, leaving other values untouched."""
        if isinstance(value, str):
            if "{{" not in value and "{%" not in value:
                return value
            return self.render_string(value, context)
        if isinstance(value, dict):
            return {key: self.render_tree(item, context) for key, item in value.items()}
        if isinstance(value, list):
            return [self.render_tree(item, context) for item in value]
        return value
