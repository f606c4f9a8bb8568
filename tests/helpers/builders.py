"""Builders for analytics API payloads used across tests."""


def aggregate_result(queue_id, **metrics):
    """Build one queue-grouped aggregate result from metric stats keyword args."""
    return {
        "group": {"queueId": queue_id},
        "data": [
            {
                "interval": "2025-11-03T00:00:00.000Z/2025-11-04T00:00:00.000Z",
                "metrics": [{"metric": name, "stats": stats} for name, stats in metrics.items()],
            }
        ],
    }
