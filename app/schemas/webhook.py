from typing import Any

from pydantic import BaseModel, ConfigDict


class WebhookEventIn(BaseModel):
    # producers send arbitrary payloads; only event_id is interpreted
    model_config = ConfigDict(extra="allow")

    event_id: str | int | None = None

    def normalized_event_id(self) -> str | None:
        if self.event_id is None or isinstance(self.event_id, bool):
            return None
        value = str(self.event_id).strip()
        return value or None

    def payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
