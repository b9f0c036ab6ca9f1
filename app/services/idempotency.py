from __future__ import annotations

from enum import Enum

from fastapi import Depends

from app.core.config import settings
from app.core.errors import ValidationError
from app.services.coordination import CoordinationStore, get_coordination_store


PROCESSED_MARKER = "processed"
MAX_EVENT_ID_LENGTH = 200


def webhook_key(event_id: str) -> str:
    return f"webhook:{event_id}"


class EventAdmission(str, Enum):
    FRESH = "fresh"
    DUPLICATE = "duplicate"


def require_event_id(event_id: str | None) -> str:
    if not event_id:
        raise ValidationError("Missing event_id")
    if len(event_id) > MAX_EVENT_ID_LENGTH:
        raise ValidationError("event_id too long")
    return event_id


class WebhookIdempotencyGate:
    """
    Duplicate suppression for inbound events, keyed by the producer's event id.

    Uses SET NX EX so two concurrent deliveries of the same event cannot both
    be admitted. The marker lives for ttl_seconds; a redelivery after that is
    treated as a new event.
    """

    def __init__(self, store: CoordinationStore, *, ttl_seconds: int = 3600):
        self.store = store
        self.ttl_seconds = ttl_seconds

    async def admit_event(self, event_id: str) -> EventAdmission:
        event_id = require_event_id(event_id)
        created = await self.store.set_if_absent(webhook_key(event_id), PROCESSED_MARKER, self.ttl_seconds)
        return EventAdmission.FRESH if created else EventAdmission.DUPLICATE

    async def release(self, event_id: str) -> None:
        """Forget an admitted event so the producer's redelivery is processed."""
        await self.store.delete(webhook_key(event_id))


async def get_idempotency_gate(
    store: CoordinationStore = Depends(get_coordination_store),
) -> WebhookIdempotencyGate:
    return WebhookIdempotencyGate(store, ttl_seconds=settings.webhook_idempotency_ttl_seconds)
