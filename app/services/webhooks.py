from __future__ import annotations

import logging
from typing import Any, Protocol

from celery import Celery
from fastapi import Request
from kombu.exceptions import OperationalError
from starlette.concurrency import run_in_threadpool

from worker.celery_app import PROCESS_WEBHOOK_TASK


log = logging.getLogger(__name__)


class EventPublishFailed(Exception):
    pass


class WebhookEventPublisher(Protocol):
    async def publish(self, event_id: str, payload: dict[str, Any]) -> None:
        ...


class CeleryWebhookPublisher:
    """Hands admitted webhook events to the worker queue."""

    def __init__(self, celery: Celery, *, queue: str = "webhooks"):
        self.celery = celery
        self.queue = queue

    async def publish(self, event_id: str, payload: dict[str, Any]) -> None:
        try:
            # send_task blocks on the broker connection
            await run_in_threadpool(
                self.celery.send_task,
                PROCESS_WEBHOOK_TASK,
                args=[event_id, payload],
                queue=self.queue,
            )
        except (OperationalError, OSError) as e:
            log.error("enqueue of webhook event %s failed: %s", event_id, e)
            raise EventPublishFailed(str(e)) from e


def get_webhook_publisher(request: Request) -> WebhookEventPublisher:
    return request.app.state.webhook_publisher
