import logging

import requests

logger = logging.getLogger(__name__)


def notify_review_needed(url, record, timeout=5):
    """Posts a flagged record to the review webhook. Failures are logged, never raised."""
    if not url:
        return False
    try:
        response = requests.post(url, json=record, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error("Failed to trigger review webhook: %s", e)
        return False
    return True
