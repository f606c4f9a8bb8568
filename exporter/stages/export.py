"""Export stage: deliver a named artifact from the DataBag to its sink."""

from typing import Any, Dict, Optional

from exporter.config.models import ExportDef, ExportType
from exporter.logging import get_logger

from .base import StageContext
from .exceptions import ExportError, StageConfigurationError, TemplateRenderError
from .rendering import TemplateRenderer
from .sinks import EmailSink, FileSink, HttpSink

logger = get_logger(__name__, component="export")


class ExportStage:
    """Renders destination and subject templates, then hands off to a sink.

    Sinks are keyed by export type; each exposes
    ``deliver(export_def, artifact, destination=..., subject=...)``.
    """

    def __init__(self, renderer: TemplateRenderer, sinks: Dict[str, Any]):
        self.renderer = renderer
        self.sinks = sinks

    def run(self, export_def: ExportDef, context: StageContext) -> str:
        """Deliver the artifact and return where it went.

        Raises:
            ExportError: If the artifact is missing or the sink fails
            StageConfigurationError: If no sink handles the export type
        """
        sink = self.sinks.get(export_def.type)
        if sink is None:
            raise StageConfigurationError(
                f"Export '{export_def.name}' uses type '{export_def.type}' but no sink is configured for it"
            )

        if export_def.source not in context.data:
            raise ExportError(
                f"Export '{export_def.name}' source '{export_def.source}' is not in the DataBag"
            )
        artifact = context.data[export_def.source]

        variables = context.template_variables()
        destination = self._render(export_def, export_def.destination, variables)
        subject = self._render(export_def, export_def.subject, variables)

        delivered_to = sink.deliver(export_def, artifact, destination=destination, subject=subject)

        logger.info(
            f"Exported '{export_def.source}' via {export_def.type} to {delivered_to}",
            extra={
                "event": "stage.export.completed",
                "export": export_def.name,
                "sink": export_def.type,
                "destination": delivered_to,
            },
        )
        return delivered_to

    def _render(self, export_def: ExportDef, value: Optional[str], variables: Dict[str, Any]) -> Optional[str]:
        if value is None:
            return None
        try:
            return self.renderer.render_string(value, variables)
        except TemplateRenderError as e:
            raise ExportError(f"Export '{export_def.name}' could not be rendered: {e}") from e


def build_default_sinks(base_dir, env_config, http_timeout: int = 30) -> Dict[str, Any]:
    """File, HTTP and email sinks wired from configuration."""
    return {
        ExportType.FILE.value: FileSink(base_dir),
        ExportType.HTTP.value: HttpSink(timeout=http_timeout),
        ExportType.EMAIL.value: EmailSink(env_config),
    }
