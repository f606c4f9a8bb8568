"""Daily conversation report card transforms.

Turns three retrievals into one report-friendly structure:

- a queue listing (``get_queues``), flattened into an id -> queue map
- a queue-grouped voice aggregate query (``daily_voice_queue_agg``)
- an abandoned conversation detail query (``daily_abandons_detail``)

The report is written to ``data["report"]`` with ``totals``, ``queues``,
``worstQueues`` and ``recentAbandons``. Source and target keys and the
list limits can be overridden through transform parameters.
"""

from typing import Any, Dict, List, MutableMapping

from .aggregation import (
    abandon_rate_percent,
    adjusted_denominator,
    default_queue_metrics,
    derive_stats,
    get_metric_map,
    stat,
)
from .builtins import flatten_entities

WORST_QUEUES_LIMIT = 10
RECENT_ABANDONS_LIMIT = 25

# Raw counters summed into the totals, in output order
COUNT_FIELDS = ("offered", "answered", "abandoned", "overSla", "shortAbandons", "flowOut")


def flatten_queue_data(
    data: MutableMapping[str, Any],
    source: str = "get_queues",
    target: str = "queues",
) -> None:
    """Build ``data[target]`` as queue id -> queue from ``data[source].entities``."""
    flatten_entities(data, source=source, target=target, field="entities", key="id")


def set_customer_participants(data: Any, field: str = "conversations") -> None:
    """Attach ``customerParticipant`` and ``queue`` to every conversation.

    The participant with purpose ``customer`` becomes customerParticipant and
    gets the last non-empty ``ani``/``dnis`` seen across its sessions; the
    participant with purpose ``acd`` becomes queue. Conversations without
    such participants get empty dicts.
    """
    if not isinstance(data, MutableMapping):
        return
    conversations = data.get(field)
    if not conversations:
        return

    for conversation in conversations:
        conversation["customerParticipant"] = {}
        conversation["queue"] = {}
        for participant in conversation.get("participants") or []:
            purpose = participant.get("purpose")
            if purpose == "customer":
                conversation["customerParticipant"] = participant
                for session in participant.get("sessions") or []:
                    if session.get("ani"):
                        participant["ani"] = session["ani"]
                    if session.get("dnis"):
                        participant["dnis"] = session["dnis"]
            elif purpose == "acd":
                conversation["queue"] = participant


def build_queue_row(result: Dict[str, Any], queue_map: Dict[str, Any]) -> Dict[str, Any]:
    """One report row from an aggregate result grouped by queueId."""
    group = result.get("group") or {}
    queue_id = group.get("queueId")
    queue = queue_map.get(queue_id) if queue_id else None
    if not queue:
        queue = {"id": queue_id or "unknown", "name": queue_id or "unknown"}

    data_points = result.get("data") or []
    observed = data_points[0].get("metrics") if data_points and isinstance(data_points[0], dict) else None
    metrics = get_metric_map(observed, default_queue_metrics())

    derived = derive_stats(
        answered_wait_sum=stat(metrics, "tAnswered", "sum"),
        answered_wait_count=stat(metrics, "tAnswered", "count"),
        handle_sum=stat(metrics, "tHandle", "sum"),
        handle_count=stat(metrics, "tHandle", "count"),
        sl_numerator=stat(metrics, "oServiceLevel", "numerator"),
        sl_denominator=stat(metrics, "oServiceLevel", "denominator"),
        sl_ratio=stat(metrics, "oServiceLevel", "ratio"),
    )

    return {
        "queue": queue,
        "queueId": queue.get("id"),
        "metrics": metrics,
        "offered": stat(metrics, "nOffered", "count"),
        "answered": stat(metrics, "tAnswered", "count"),
        "abandoned": stat(metrics, "tAbandon", "count"),
        "overSla": stat(metrics, "nOverSla", "count"),
        "shortAbandons": stat(metrics, "tShortAbandon", "count"),
        "flowOut": stat(metrics, "tFlowOut", "count"),
        "asaSeconds": derived["asaSeconds"],
        "ahtSeconds": derived["ahtSeconds"],
        "serviceLevelRatio": derived["serviceLevelRatio"],
        "serviceLevelPercent": derived["serviceLevelPercent"],
    }


def build_totals(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Field-wise sums of all rows, derived with the same formulas as a row."""
    totals = {name: 0 for name in COUNT_FIELDS}
    wait_sum = wait_count = handle_sum = handle_count = sl_num = sl_den = 0

    for row in rows:
        for name in COUNT_FIELDS:
            totals[name] += row[name]
        metrics = row["metrics"]
        wait_sum += stat(metrics, "tAnswered", "sum")
        wait_count += stat(metrics, "tAnswered", "count")
        handle_sum += stat(metrics, "tHandle", "sum")
        handle_count += stat(metrics, "tHandle", "count")
        numerator = stat(metrics, "oServiceLevel", "numerator")
        sl_num += numerator
        sl_den += adjusted_denominator(numerator, stat(metrics, "oServiceLevel", "denominator"))

    derived = derive_stats(wait_sum, wait_count, handle_sum, handle_count, sl_num, sl_den)
    totals["abandonRatePercent"] = abandon_rate_percent(totals["abandoned"], totals["offered"])
    totals["asaSeconds"] = derived["asaSeconds"]
    totals["ahtSeconds"] = derived["ahtSeconds"]
    totals["serviceLevelRatio"] = derived["serviceLevelRatio"]
    totals["serviceLevelPercent"] = derived["serviceLevelPercent"]
    return totals


def recent_abandon(conversation: Dict[str, Any]) -> Dict[str, Any]:
    queue = conversation.get("queue") or {}
    customer = conversation.get("customerParticipant") or {}
    return {
        "conversationId": conversation.get("conversationId"),
        "conversationStart": conversation.get("conversationStart"),
        "queueName": queue.get("participantName") or "",
        "ani": customer.get("ani") or "",
        "dnis": customer.get("dnis") or "",
    }


def prepare_report(
    data: MutableMapping[str, Any],
    queues_source: str = "get_queues",
    aggregate_source: str = "daily_voice_queue_agg",
    abandons_source: str = "daily_abandons_detail",
    queue_map_target: str = "queues",
    target: str = "report",
    worst_limit: int = WORST_QUEUES_LIMIT,
    abandons_limit: int = RECENT_ABANDONS_LIMIT,
) -> None:
    """Build the report card under ``data[target]``.

    Existing keys of ``data[target]`` other than the four report sections
    are kept, so earlier transforms may contribute to the report.
    """
    report = data.get(target)
    if not isinstance(report, dict):
        report = {}

    flatten_queue_data(data, source=queues_source, target=queue_map_target)
    queue_map = data.get(queue_map_target) or {}

    aggregate = data.get(aggregate_source) or {}
    results = aggregate.get("results") if isinstance(aggregate, dict) else None
    rows = [build_queue_row(result, queue_map) for result in results or []]

    report["totals"] = build_totals(rows)
    # sorted() is stable, so ties keep source order
    report["queues"] = sorted(rows, key=lambda row: -row["offered"])
    report["worstQueues"] = sorted(
        rows, key=lambda row: (row["serviceLevelRatio"], -row["offered"])
    )[:worst_limit]

    abandons = data.get(abandons_source) or {}
    conversations = abandons.get("conversations") if isinstance(abandons, dict) else None
    report["recentAbandons"] = [recent_abandon(c) for c in (conversations or [])[:abandons_limit]]

    data[target] = report


def register(registry) -> None:
    registry.register("report_card.flatten_queue_data", flatten_queue_data)
    registry.register("report_card.set_customer_participants", set_customer_participants)
    registry.register("report_card.prepare_report", prepare_report)
