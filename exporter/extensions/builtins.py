"""Generic reshaping transforms registered by default.

Each function mutates the DataBag in place and reads/writes entries by
name, so jobs can chain them without writing an extension module.
"""

import copy
from typing import Any, MutableMapping, Optional

from .aggregation import safe_number

BUILTIN_NAMES = ("flatten_entities", "copy", "count", "pluck", "sum_field")


def _lookup(data: MutableMapping[str, Any], source: str, field: Optional[str]) -> Any:
    value = data.get(source)
    if field and isinstance(value, dict):
        value = value.get(field)
    return value


def flatten_entities(
    data: MutableMapping[str, Any],
    source: str,
    target: str,
    field: Optional[str] = "entities",
    key: str = "id",
) -> None:
    """Map ``data[source][field]`` to ``{entity[key]: entity}`` under ``target``.

    A missing source yields an empty map; later duplicates win.
    """
    entities = _lookup(data, source, field)
    flattened = {}
    for entity in entities or []:
        if isinstance(entity, dict) and key in entity:
            flattened[entity[key]] = entity
    data[target] = flattened


def copy_value(
    data: MutableMapping[str, Any],
    source: str,
    target: str,
    field: Optional[str] = None,
) -> None:
    """Deep-copy ``data[source]`` (or one field of it) to ``data[target]``."""
    data[target] = copy.deepcopy(_lookup(data, source, field))


def count(
    data: MutableMapping[str, Any],
    source: str,
    target: str,
    field: Optional[str] = None,
) -> None:
    """Store the length of a list (0 when missing)."""
    value = _lookup(data, source, field)
    data[target] = len(value) if isinstance(value, (list, dict)) else 0


def pluck(
    data: MutableMapping[str, Any],
    source: str,
    target: str,
    attribute: str,
    field: Optional[str] = None,
) -> None:
    """Collect one attribute from every item of a list."""
    items = _lookup(data, source, field) or []
    data[target] = [item.get(attribute) for item in items if isinstance(item, dict)]


def sum_field(
    data: MutableMapping[str, Any],
    source: str,
    target: str,
    attribute: str,
    field: Optional[str] = None,
) -> None:
    """Sum one numeric attribute over a list; non-numeric values count as zero."""
    items = _lookup(data, source, field) or []
    data[target] = sum(
        safe_number(item.get(attribute), 0) for item in items if isinstance(item, dict)
    )


def register(registry) -> None:
    registry.register("flatten_entities", flatten_entities)
    registry.register("copy", copy_value)
    registry.register("count", count)
    registry.register("pluck", pluck)
    registry.register("sum_field", sum_field)
