import logging
from typing import Any

from worker.celery_app import PROCESS_WEBHOOK_TASK, celery


log = logging.getLogger(__name__)


def handle_webhook_event(event_id: str, payload: dict[str, Any]) -> None:
    # the API's idempotency gate already suppressed duplicates within its TTL
    fields = sorted(k for k in payload if k != "event_id")
    log.info("processing webhook event %s (fields: %s)", event_id, ", ".join(fields) or "-")


@celery.task(name=PROCESS_WEBHOOK_TASK)
def process_webhook_event(event_id: str, payload: dict[str, Any]) -> None:
    handle_webhook_event(event_id, payload)
