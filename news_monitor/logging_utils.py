import json
import logging
from datetime import datetime, timezone


logging.basicConfig(level=logging.INFO)

logger = logging.getLogger("news_monitor")


def log_event(event: str, **fields):
    payload = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "event": event,
        **fields,
    }

    logger.info(json.dumps(payload, default=str))


def log_error(event: str, **fields):
    """Same shape as log_event, at ERROR level (webhook failures, store errors)."""
    payload = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "event": event,
        **fields,
    }

    logger.error(json.dumps(payload, default=str))
