from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Sequence

from sqlalchemy import Select, and_, func, literal_column, or_, select

from app.models.product import Product
from app.schemas.product import ProductListOut, ProductOut
from app.services.cursor import CursorPosition, SortField, decode_cursor, encode_cursor


log = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
MAX_LIMIT = 100

# wire names accepted for sortBy
_SORT_ALIASES = {
    "createdAt": SortField.CREATED_AT,
    "created_at": SortField.CREATED_AT,
    "price": SortField.PRICE,
    "name": SortField.NAME,
}

_SORT_COLUMNS = {
    SortField.CREATED_AT: Product.created_at,
    SortField.PRICE: Product.price,
    SortField.NAME: Product.name,
}


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class ListingFilters:
    category: str | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    search_text: str | None = None


@dataclass(frozen=True)
class ListingQuery:
    limit: int = DEFAULT_LIMIT
    sort_field: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC
    filters: ListingFilters = field(default_factory=ListingFilters)
    cursor: CursorPosition | None = None


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _parse_limit(raw: str | None) -> int:
    try:
        limit = int(raw) if raw is not None else DEFAULT_LIMIT
    except ValueError:
        return DEFAULT_LIMIT
    if limit < 1:
        return DEFAULT_LIMIT
    return min(limit, MAX_LIMIT)


def _parse_price(raw: str | None) -> Decimal | None:
    # non-numeric bounds are dropped, not rejected
    raw = _blank_to_none(raw)
    if raw is None:
        return None
    try:
        value = Decimal(raw)
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


def parse_listing_query(
    *,
    limit: str | None = None,
    cursor: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    category: str | None = None,
    min_price: str | None = None,
    max_price: str | None = None,
    q: str | None = None,
) -> ListingQuery:
    """
    Normalize raw query-string values into an immutable ListingQuery.
    Raises InvalidCursor when a cursor is given but cannot be decoded.
    """
    sort_field = _SORT_ALIASES.get(sort_by or "", SortField.CREATED_AT)
    order = SortOrder.ASC if sort_order == "asc" else SortOrder.DESC

    position: CursorPosition | None = None
    token = _blank_to_none(cursor)
    if token is not None:
        position = decode_cursor(token)
        if position.sort_field is not sort_field:
            # a cursor from another sort cannot resume this one: start over
            log.info(
                "cursor sort field %s does not match sortBy=%s, ignoring cursor",
                position.sort_field.value,
                sort_field.value,
            )
            position = None

    filters = ListingFilters(
        category=_blank_to_none(category),
        min_price=_parse_price(min_price),
        max_price=_parse_price(max_price),
        search_text=_blank_to_none(q),
    )
    return ListingQuery(
        limit=_parse_limit(limit),
        sort_field=sort_field,
        sort_order=order,
        filters=filters,
        cursor=position,
    )


def _decimal_key(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return format(value.normalize(), "f")


def query_fingerprint(query: ListingQuery) -> str:
    """Stable digest of the normalized query; equal queries share cache entries, pages do not."""
    doc: dict[str, Any] = {
        "limit": query.limit,
        "sort": query.sort_field.value,
        "order": query.sort_order.value,
        "category": query.filters.category,
        "min_price": _decimal_key(query.filters.min_price),
        "max_price": _decimal_key(query.filters.max_price),
        "q": query.filters.search_text,
        "cursor": encode_cursor(query.cursor) if query.cursor else None,
    }
    raw = json.dumps(doc, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def _text_match(text: str, dialect_name: str):
    if dialect_name == "postgresql":
        # must match the expression of the GIN index in the products migration
        document = func.to_tsvector(
            literal_column("'simple'"),
            Product.name + literal_column("' '") + func.coalesce(Product.description, literal_column("''")),
        )
        return document.bool_op("@@")(func.plainto_tsquery(literal_column("'simple'"), text))
    return or_(
        Product.name.icontains(text, autoescape=True),
        Product.description.icontains(text, autoescape=True),
    )


def _after_cursor(column, cursor: CursorPosition, order: SortOrder):
    value, last_id = cursor.last_value, cursor.last_id
    if order is SortOrder.ASC:
        return or_(column > value, and_(column == value, Product.id > last_id))
    return or_(column < value, and_(column == value, Product.id < last_id))


def build_listing_statement(query: ListingQuery, *, dialect_name: str = "postgresql") -> Select:
    """
    Keyset scan for one page: filters, strict seek past the cursor on
    (sort column, id), ORDER BY (sort column, id) and LIMIT limit + 1.
    """
    column = _SORT_COLUMNS[query.sort_field]
    filters = query.filters

    stmt = select(Product)
    if filters.category is not None:
        stmt = stmt.where(Product.category == filters.category)
    if filters.min_price is not None:
        stmt = stmt.where(Product.price >= filters.min_price)
    if filters.max_price is not None:
        stmt = stmt.where(Product.price <= filters.max_price)
    if filters.search_text is not None:
        stmt = stmt.where(_text_match(filters.search_text, dialect_name))

    if query.cursor is not None:
        stmt = stmt.where(_after_cursor(column, query.cursor, query.sort_order))

    if query.sort_order is SortOrder.ASC:
        stmt = stmt.order_by(column.asc(), Product.id.asc())
    else:
        stmt = stmt.order_by(column.desc(), Product.id.desc())

    # one extra row tells us whether another page exists
    return stmt.limit(query.limit + 1)


def build_listing_result(rows: Sequence[Product], query: ListingQuery) -> ProductListOut:
    has_more = len(rows) > query.limit
    page = list(rows[: query.limit])

    next_cursor: str | None = None
    if has_more and page:
        last = page[-1]
        next_cursor = encode_cursor(
            CursorPosition(
                sort_field=query.sort_field,
                last_id=last.id,
                last_value=getattr(last, query.sort_field.value),
            )
        )

    return ProductListOut(
        data=[ProductOut.model_validate(r) for r in page],
        next_cursor=next_cursor,
        has_more=next_cursor is not None,
    )
