import logging

from fastapi import APIRouter, Depends

from app.core.errors import UpstreamUnavailable
from app.schemas.common import MessageResponse
from app.schemas.webhook import WebhookEventIn
from app.services.idempotency import (
    EventAdmission,
    WebhookIdempotencyGate,
    get_idempotency_gate,
    require_event_id,
)
from app.services.webhooks import EventPublishFailed, WebhookEventPublisher, get_webhook_publisher


log = logging.getLogger(__name__)
router = APIRouter()


@router.post("/webhook", response_model=MessageResponse)
async def receive_webhook(
    event: WebhookEventIn,
    gate: WebhookIdempotencyGate = Depends(get_idempotency_gate),
    publisher: WebhookEventPublisher = Depends(get_webhook_publisher),
) -> MessageResponse:
    event_id = require_event_id(event.normalized_event_id())

    admission = await gate.admit_event(event_id)
    if admission is EventAdmission.DUPLICATE:
        # still 200: the producer must not keep redelivering
        log.info("duplicate webhook event %s ignored", event_id)
        return MessageResponse(message="Duplicate event ignored")

    try:
        await publisher.publish(event_id, event.payload())
    except EventPublishFailed:
        # un-mark so the producer's retry is processed instead of suppressed
        await gate.release(event_id)
        raise UpstreamUnavailable("Webhook event could not be queued")

    log.info("webhook event %s accepted", event_id)
    return MessageResponse(message="Webhook received")
