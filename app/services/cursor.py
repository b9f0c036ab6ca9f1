from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Union

from app.core.errors import InvalidCursor


class SortField(str, Enum):
    CREATED_AT = "created_at"
    PRICE = "price"
    NAME = "name"


SortValue = Union[datetime, Decimal, str]


@dataclass(frozen=True)
class CursorPosition:
    """Where the previous page ended: the active sort column's value plus the row id."""

    sort_field: SortField
    last_id: int
    last_value: SortValue


def _encode_value(field: SortField, value: SortValue) -> Any:
    if field is SortField.CREATED_AT:
        return value.isoformat()
    if field is SortField.PRICE:
        # decimal string keeps prices exact across the round trip
        return str(value)
    return value


def _decode_value(field: SortField, raw: Any) -> SortValue:
    if field is SortField.CREATED_AT:
        if not isinstance(raw, str):
            raise InvalidCursor()
        try:
            return datetime.fromisoformat(raw)
        except ValueError as e:
            raise InvalidCursor() from e

    if field is SortField.PRICE:
        if isinstance(raw, bool) or not isinstance(raw, (str, int)):
            raise InvalidCursor()
        try:
            price = Decimal(str(raw))
        except InvalidOperation as e:
            raise InvalidCursor() from e
        if not price.is_finite():
            raise InvalidCursor()
        return price

    if not isinstance(raw, str):
        raise InvalidCursor()
    return raw


def encode_cursor(position: CursorPosition) -> str:
    payload = {
        "id": position.last_id,
        position.sort_field.value: _encode_value(position.sort_field, position.last_value),
    }
    raw = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def decode_cursor(token: str) -> CursorPosition:
    """
    Reverse of encode_cursor.
    Raises InvalidCursor for anything that is not a token we produced.
    """
    if not token:
        raise InvalidCursor()

    padded = token + "=" * (-len(token) % 4)
    try:
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
        payload = json.loads(raw.decode("utf-8"))
    except ValueError as e:
        # binascii.Error, UnicodeDecodeError and JSONDecodeError are all ValueErrors
        raise InvalidCursor() from e

    if not isinstance(payload, dict):
        raise InvalidCursor()

    last_id = payload.get("id")
    if isinstance(last_id, bool) or not isinstance(last_id, int):
        raise InvalidCursor()

    fields = [f for f in SortField if f.value in payload]
    if len(fields) != 1 or len(payload) != 2:
        raise InvalidCursor()

    field = fields[0]
    return CursorPosition(sort_field=field, last_id=last_id, last_value=_decode_value(field, payload[field.value]))
