from decimal import Decimal

import pytest
from sqlalchemy.dialects import postgresql, sqlite

from app.core.errors import InvalidCursor
from app.services.cursor import CursorPosition, SortField, encode_cursor
from app.services.product_query import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    ListingQuery,
    SortOrder,
    build_listing_statement,
    parse_listing_query,
    query_fingerprint,
)


def _sql(stmt, dialect) -> str:
    return str(stmt.compile(dialect=dialect, compile_kwargs={"literal_binds": True}))


def test_defaults():
    query = parse_listing_query()
    assert query.limit == DEFAULT_LIMIT
    assert query.sort_field is SortField.CREATED_AT
    assert query.sort_order is SortOrder.DESC
    assert query.cursor is None
    assert query.filters.category is None


@pytest.mark.parametrize(
    "raw,expected",
    [("5", 5), ("100", 100), ("1000", MAX_LIMIT), ("0", DEFAULT_LIMIT), ("-3", DEFAULT_LIMIT), ("abc", DEFAULT_LIMIT)],
)
def test_limit_is_clamped(raw, expected):
    assert parse_listing_query(limit=raw).limit == expected


def test_sort_aliases_and_order():
    assert parse_listing_query(sort_by="price", sort_order="asc").sort_field is SortField.PRICE
    assert parse_listing_query(sort_by="createdAt").sort_field is SortField.CREATED_AT
    assert parse_listing_query(sort_by="rating").sort_field is SortField.CREATED_AT
    assert parse_listing_query(sort_order="ASC").sort_order is SortOrder.DESC
    assert parse_listing_query(sort_order="asc").sort_order is SortOrder.ASC


def test_filters_are_normalized():
    query = parse_listing_query(category="  books ", min_price="10", max_price="x", q="   ")
    assert query.filters.category == "books"
    assert query.filters.min_price == Decimal("10")
    assert query.filters.max_price is None
    assert query.filters.search_text is None


def test_non_finite_price_bound_is_dropped():
    assert parse_listing_query(min_price="Infinity").filters.min_price is None


def test_invalid_cursor_is_rejected():
    with pytest.raises(InvalidCursor):
        parse_listing_query(cursor="@@@")


def test_cursor_for_other_sort_is_ignored():
    token = encode_cursor(CursorPosition(SortField.NAME, 4, "lamp"))
    assert parse_listing_query(cursor=token, sort_by="price").cursor is None
    assert parse_listing_query(cursor=token, sort_by="name").cursor == CursorPosition(SortField.NAME, 4, "lamp")


def test_fingerprint_ignores_equivalent_spellings():
    a = parse_listing_query(sort_by="createdAt", min_price="10.0", category="books")
    b = parse_listing_query(sort_by="created_at", min_price="10", category=" books")
    assert query_fingerprint(a) == query_fingerprint(b)


def test_fingerprint_differs_per_page():
    first = parse_listing_query(sort_by="price")
    token = encode_cursor(CursorPosition(SortField.PRICE, 2, Decimal("10.00")))
    second = parse_listing_query(sort_by="price", cursor=token)
    assert query_fingerprint(first) != query_fingerprint(second)


def test_statement_fetches_one_extra_row_in_stable_order():
    stmt = build_listing_statement(ListingQuery(limit=20, sort_field=SortField.PRICE, sort_order=SortOrder.ASC))
    sql = _sql(stmt, postgresql.dialect())
    assert "ORDER BY products.price ASC, products.id ASC" in sql
    assert "LIMIT 21" in sql


def test_statement_seeks_past_cursor_descending():
    query = ListingQuery(
        limit=2,
        sort_field=SortField.PRICE,
        sort_order=SortOrder.DESC,
        cursor=CursorPosition(SortField.PRICE, 9, Decimal("10.00")),
    )
    sql = _sql(build_listing_statement(query), postgresql.dialect())
    assert "products.price < 10.00" in sql
    assert "products.price = 10.00 AND products.id < 9" in sql
    assert "ORDER BY products.price DESC, products.id DESC" in sql


def test_text_search_uses_full_text_on_postgres():
    query = parse_listing_query(q="desk lamp")
    sql = _sql(build_listing_statement(query, dialect_name="postgresql"), postgresql.dialect())
    assert "to_tsvector('simple'" in sql
    assert "plainto_tsquery('simple', 'desk lamp')" in sql


def test_text_search_falls_back_to_substring_match():
    query = parse_listing_query(q="50%")
    sql = _sql(build_listing_statement(query, dialect_name="sqlite"), sqlite.dialect())
    assert "lower(products.name) LIKE" in sql
    assert "ESCAPE" in sql


def test_text_search_document_matches_index_expression_without_parameters():
    query = parse_listing_query(q="lamp")
    compiled = build_listing_statement(query, dialect_name="postgresql").compile(dialect=postgresql.dialect())
    sql = str(compiled)
    assert "to_tsvector('simple', products.name || ' ' || coalesce(products.description, ''))" in sql
    # only the search text and the limit are bound
    assert sorted(compiled.params.values(), key=str) == sorted(["lamp", query.limit + 1], key=str)
