"""Transform stage: apply a builtin or extension function to the DataBag."""

from typing import Any, Optional

from exporter.config.models import TransformDef, TransformKind
from exporter.extensions.builtins import BUILTIN_NAMES
from exporter.extensions.registry import (
    ExtensionNotFoundError,
    ExtensionRegistry,
    default_registry,
)
from exporter.logging import get_logger

from .base import StageContext
from .exceptions import StageConfigurationError, TransformError

logger = get_logger(__name__, component="transform")


class TransformStage:
    """Resolves a transform's function and calls it with the run's data.

    The function receives ``data[source]`` when the definition names a
    source, otherwise the whole DataBag, plus the definition's parameters
    as keyword arguments. Whatever it raises becomes a TransformError.
    """

    def __init__(self, registry: Optional[ExtensionRegistry] = None):
        self.registry = registry or default_registry()

    def run(self, transform_def: TransformDef, context: StageContext) -> Any:
        if transform_def.kind == TransformKind.BUILTIN.value and transform_def.extension not in BUILTIN_NAMES:
            raise StageConfigurationError(
                f"Transform '{transform_def.name}' references unknown builtin "
                f"'{transform_def.extension}'. Available: {', '.join(BUILTIN_NAMES)}"
            )

        try:
            function = self.registry.resolve(
                transform_def.extension,
                allow_import=transform_def.kind == TransformKind.EXTENSION.value,
            )
        except ExtensionNotFoundError as e:
            raise StageConfigurationError(
                f"Transform '{transform_def.name}': {e}"
            ) from e

        if transform_def.source:
            if transform_def.source not in context.data:
                raise TransformError(
                    f"Transform '{transform_def.name}' source '{transform_def.source}' "
                    f"is not in the DataBag"
                )
            target = context.data[transform_def.source]
        else:
            target = context.data

        logger.debug(
            f"Applying transform '{transform_def.name}' ({transform_def.extension})",
            extra={
                "event": "stage.transform.started",
                "transform": transform_def.name,
                "extension": transform_def.extension,
            },
        )

        try:
            result = function(target, **transform_def.parameters)
        except Exception as e:
            raise TransformError(
                f"Transform '{transform_def.name}' failed: {type(e).__name__}: {e}"
            ) from e

        logger.info(
            f"Transform '{transform_def.name}' completed",
            extra={"event": "stage.transform.completed", "transform": transform_def.name},
        )
        return result
