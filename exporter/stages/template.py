"""Template stage: render a Jinja2 view of the DataBag into a named artifact."""

import json
from typing import Any

from exporter.config.models import TemplateDef, TemplateFormat
from exporter.logging import get_logger

from .base import StageContext
from .exceptions import TemplateRenderError
from .rendering import TemplateRenderer

logger = get_logger(__name__, component="template")


class TemplateStage:
    def __init__(self, renderer: TemplateRenderer):
        self.renderer = renderer

    def run(self, template_def: TemplateDef, context: StageContext) -> Any:
        """Render the template and store the artifact under its target name.

        Raises:
            TemplateRenderError: On a missing file, an undefined variable, or
                unparseable output for json templates
        """
        variables = context.template_variables()
        if template_def.file:
            rendered = self.renderer.render_file(template_def.file, variables)
        else:
            rendered = self.renderer.render_string(template_def.template, variables)

        artifact: Any = rendered
        if template_def.format == TemplateFormat.JSON.value:
            try:
                artifact = json.loads(rendered)
            except json.JSONDecodeError as e:
                raise TemplateRenderError(
                    f"Template '{template_def.name}' did not render valid JSON: {e}"
                ) from e

        context.data[template_def.target_name] = artifact

        logger.info(
            f"Rendered template '{template_def.name}' into '{template_def.target_name}'",
            extra={
                "event": "stage.template.completed",
                "template": template_def.name,
                "target": template_def.target_name,
                "size": len(rendered),
            },
        )
        return artifact
