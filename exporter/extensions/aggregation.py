"""Numeric helpers for building reports from sparse analytics metrics.

Analytics APIs omit metrics that had no observations and may return
numbers as strings. Everything here coerces its inputs so a report
never fails on a missing or malformed value.
"""

import copy
import math
from typing import Any, Dict, Iterable, Optional

Number = float


def safe_number(value: Any, fallback: Number = 0) -> Number:
    """Coerce ``value`` to a finite number, returning ``fallback`` otherwise.

    Example:
        >>> safe_number("12")
        12.0
        >>> safe_number(None, 5)
        5
        >>> safe_number(float("nan"))
        0
    """
    if value is None:
        return fallback
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    return number if math.isfinite(number) else fallback


def safe_divide(numerator: Any, denominator: Any, fallback: Number = 0) -> Number:
    """Divide with both operands coerced; a zero denominator yields ``fallback``."""
    num = safe_number(numerator, 0)
    den = safe_number(denominator, 0)
    if den == 0:
        return fallback
    return num / den


def js_round(value: Number) -> int:
    """Round half up (2.5 -> 3, -2.5 -> -2) rather than to even."""
    return int(math.floor(value + 0.5))


def default_queue_metrics() -> Dict[str, Dict[str, Any]]:
    """Zero-valued entries for every metric the queue report reads."""
    return {
        "nOffered": {"metric": "nOffered", "stats": {"count": 0}},
        "tAnswered": {"metric": "tAnswered", "stats": {"count": 0, "sum": 0}},
        "tAbandon": {"metric": "tAbandon", "stats": {"count": 0, "sum": 0}},
        "tWait": {"metric": "tWait", "stats": {"count": 0, "sum": 0}},
        "tHandle": {"metric": "tHandle", "stats": {"count": 0, "sum": 0}},
        "nOverSla": {"metric": "nOverSla", "stats": {"count": 0}},
        "tShortAbandon": {"metric": "tShortAbandon", "stats": {"count": 0}},
        "tFlowOut": {"metric": "tFlowOut", "stats": {"count": 0}},
        "oServiceLevel": {
            "metric": "oServiceLevel",
            "stats": {"ratio": 0, "numerator": 0, "denominator": 0, "target": 0},
        },
        "oServiceTarget": {"metric": "oServiceTarget", "stats": {"target": 0}},
    }


def get_metric_map(
    metrics: Optional[Iterable[Dict[str, Any]]],
    defaults: Optional[Dict[str, Dict[str, Any]]] = None,
) -> Dict[str, Dict[str, Any]]:
    """Merge sparse observed metrics into a dense map keyed by metric name.

    The defaults are deep-copied; an observed entry replaces the whole
    default entry of the same name (stats are not merged field by field).
    """
    metric_map = copy.deepcopy(defaults or {})
    for metric in metrics or []:
        if isinstance(metric, dict) and metric.get("metric"):
            metric_map[metric["metric"]] = metric
    return metric_map


def stat(metric_map: Dict[str, Dict[str, Any]], metric: str, field: str) -> Number:
    """Read ``metric_map[metric]['stats'][field]`` as a safe number."""
    entry = metric_map.get(metric) or {}
    stats = entry.get("stats") or {}
    return safe_number(stats.get(field), 0)


def adjusted_denominator(numerator: Number, denominator: Number) -> Number:
    """A zero service-level denominator with a positive numerator becomes the numerator."""
    if denominator == 0 and numerator > 0:
        return numerator
    return denominator


def derive_stats(
    answered_wait_sum: Number,
    answered_wait_count: Number,
    handle_sum: Number,
    handle_count: Number,
    sl_numerator: Number,
    sl_denominator: Number,
    sl_ratio: Number = 0,
) -> Dict[str, Number]:
    """Derived figures shared by queue rows and report totals.

    Returns:
        Dict with asaSeconds, ahtSeconds, serviceLevelRatio,
        serviceLevelPercent and the adjusted serviceLevelDenominator
    """
    sl_denominator = adjusted_denominator(sl_numerator, sl_denominator)
    if sl_ratio == 0 and sl_denominator > 0:
        sl_ratio = safe_divide(sl_numerator, sl_denominator, 0)

    return {
        "asaSeconds": js_round(safe_divide(answered_wait_sum, answered_wait_count, 0)),
        "ahtSeconds": js_round(safe_divide(handle_sum, handle_count, 0)),
        "serviceLevelRatio": sl_ratio,
        "serviceLevelPercent": js_round(sl_ratio * 100),
        "serviceLevelDenominator": sl_denominator,
    }


def abandon_rate_percent(abandoned: Number, offered: Number) -> float:
    """Abandon rate with one decimal place, e.g. 15 of 150 -> 10.0."""
    return js_round(safe_divide(abandoned, offered, 0) * 1000) / 10
