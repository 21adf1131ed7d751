"""Analytics module for sending metrics to Datadog.

This module implements fail-open analytics integration with Datadog HTTP API.
Metric failures are logged but do not block user flow.
"""

import logging
import time

import requests

logger = logging.getLogger(__name__)

DATADOG_API_URL = "https://api.datadoghq.com/api/v1/series"
METRIC_PREFIX = "sidequest"


def send_metric(name: str, tags: dict[str, str], datadog_api_key: str | None) -> bool:
    """Send a COUNT metric to Datadog.

    Sends ``sidequest.<name>`` with a value of 1 and ``key:value`` tags.
    Uses fail-open design: logs errors but returns False instead of raising
    exceptions. Without an API key nothing is sent.

    Args:
        name: Metric name without the prefix (e.g. quest_joined)
        tags: Tag mapping, e.g. {"category": "coding"}
        datadog_api_key: Datadog API key for authentication

    Returns:
        True if metric was sent successfully, False otherwise

    Example:
        >>> send_metric("quest_joined", {"status": "forming"}, "your-api-key")
        True
    """
    if not datadog_api_key:
        logger.debug(f"No Datadog API key configured, skipping metric {name}")
        return False

    try:
        timestamp = int(time.time())

        payload = {
            "series": [{
                "metric": f"{METRIC_PREFIX}.{name}",
                "type": "count",
                "points": [[timestamp, 1]],
                "tags": [f"{key}:{value}" for key, value in sorted(tags.items())]
            }]
        }

        headers = {
            "Content-Type": "application/json",
            "DD-API-KEY": datadog_api_key
        }

        response = requests.post(
            DATADOG_API_URL,
            json=payload,
            headers=headers,
            timeout=5  # 5 second timeout
        )

        response.raise_for_status()
        logger.info(f"Successfully sent metric: {name}")
        return True

    except requests.exceptions.RequestException as e:
        logger.error(f"Failed to send Datadog metric {name}: {e}")
        return False


def send_quest_joined(quest_category: str, status: str, datadog_api_key: str | None) -> bool:
    return send_metric("quest_joined", {"category": quest_category or "none", "status": status},
                       datadog_api_key)


def send_quest_completed(quest_category: str, team_size: int, datadog_api_key: str | None) -> bool:
    return send_metric("quest_completed", {"category": quest_category or "none", "team_size": str(team_size)},
                       datadog_api_key)


def send_feedback_submitted(enjoyment: int, datadog_api_key: str | None) -> bool:
    return send_metric("feedback_submitted", {"enjoyment": str(enjoyment)}, datadog_api_key)
