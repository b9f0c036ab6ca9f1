from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from app.models.product import Product
from app.services.product_query import parse_listing_query
from app.services.products import CACHE_KEY_PREFIX, ProductListingService, ProductRepository, listing_cache_key


BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


def _product(id: int, *, price: str, name: str | None = None, category: str = "home", minutes: int = 0, description=None):
    return Product(
        id=id,
        name=name or f"Product {id}",
        description=description,
        category=category,
        price=Decimal(price),
        created_at=BASE_TIME + timedelta(minutes=minutes),
        updated_at=BASE_TIME + timedelta(minutes=minutes),
    )


@pytest_asyncio.fixture
async def three_products(db_session):
    db_session.add_all([
        _product(1, price="10.00", minutes=1),
        _product(2, price="10.00", minutes=2),
        _product(3, price="20.00", minutes=3),
    ])
    await db_session.commit()


@pytest_asyncio.fixture
async def ten_products(db_session):
    # created_at ties on purpose: pairs share a timestamp
    db_session.add_all([_product(i, price=f"{i}.50", minutes=i // 2) for i in range(1, 11)])
    await db_session.commit()


@pytest.mark.asyncio
async def test_pages_by_price_with_ties(client, three_products):
    r1 = await client.get("/v1/products", params={"sortBy": "price", "sortOrder": "asc", "limit": 2})
    assert r1.status_code == 200
    first = r1.json()
    assert [p["id"] for p in first["data"]] == [1, 2]
    assert first["hasMore"] is True
    assert first["nextCursor"]

    r2 = await client.get(
        "/v1/products",
        params={"sortBy": "price", "sortOrder": "asc", "limit": 2, "cursor": first["nextCursor"]},
    )
    second = r2.json()
    assert [p["id"] for p in second["data"]] == [3]
    assert second["hasMore"] is False
    assert second["nextCursor"] is None


@pytest.mark.asyncio
async def test_walking_all_pages_has_no_gaps_or_duplicates(client, ten_products):
    seen: list[int] = []
    cursor = None
    pages = 0
    while True:
        params = {"limit": 3}
        if cursor:
            params["cursor"] = cursor
        body = (await client.get("/v1/products", params=params)).json()
        seen.extend(p["id"] for p in body["data"])
        pages += 1
        cursor = body["nextCursor"]
        if not body["hasMore"]:
            break

    assert pages == 4
    assert len(seen) == len(set(seen)) == 10
    # created_at desc, id desc on ties
    assert seen == [10, 9, 8, 7, 6, 5, 4, 3, 2, 1]


@pytest.mark.asyncio
async def test_exact_multiple_of_limit_ends_without_cursor(client, three_products):
    body = (await client.get("/v1/products", params={"limit": 3})).json()
    assert len(body["data"]) == 3
    assert body["hasMore"] is False
    assert body["nextCursor"] is None


@pytest.mark.asyncio
async def test_filters_combine(client, db_session):
    db_session.add_all([
        _product(1, price="5.00", category="books", name="Garden guide"),
        _product(2, price="15.00", category="books", name="Desk lamp manual"),
        _product(3, price="25.00", category="books", name="Cook book", description="lamp recipes"),
        _product(4, price="15.00", category="home", name="Desk lamp"),
    ])
    await db_session.commit()

    body = (
        await client.get(
            "/v1/products",
            params={"category": "books", "minPrice": "10", "maxPrice": "30", "q": "lamp", "sortBy": "price", "sortOrder": "asc"},
        )
    ).json()
    assert [p["id"] for p in body["data"]] == [2, 3]


@pytest.mark.asyncio
async def test_unparseable_price_bound_is_ignored(client, three_products):
    r = await client.get("/v1/products", params={"minPrice": "cheap"})
    assert r.status_code == 200
    assert len(r.json()["data"]) == 3


@pytest.mark.asyncio
async def test_empty_catalog(client):
    body = (await client.get("/v1/products")).json()
    assert body == {"data": [], "nextCursor": None, "hasMore": False}


@pytest.mark.asyncio
async def test_invalid_cursor_is_client_error(client):
    r = await client.get("/v1/products", params={"cursor": "%%%not-a-cursor"})
    assert r.status_code == 400
    assert r.json() == {"message": "Invalid cursor format"}


@pytest.mark.asyncio
async def test_responses_are_cached_until_ttl(client, db_session, store, three_products):
    first = (await client.get("/v1/products")).json()

    db_session.add(_product(4, price="30.00", minutes=10))
    await db_session.commit()

    cached = (await client.get("/v1/products")).json()
    assert cached == first

    store.advance(61)
    fresh = (await client.get("/v1/products")).json()
    assert [p["id"] for p in fresh["data"]][0] == 4


@pytest.mark.asyncio
async def test_listing_survives_store_outage(client, store, three_products):
    store.fail = True
    r = await client.get("/v1/products")
    assert r.status_code == 200
    assert len(r.json()["data"]) == 3


@pytest.mark.asyncio
async def test_service_writes_cache_entry_with_ttl(db_session, store, three_products):
    service = ProductListingService(repository=ProductRepository(db_session), store=store, cache_ttl_seconds=60)
    query = parse_listing_query(sort_by="price")

    result = await service.list(query)

    key = listing_cache_key(query)
    assert key.startswith(CACHE_KEY_PREFIX)
    assert store.ttl(key) == 60
    assert (await service.list(query)) == result


@pytest.mark.asyncio
async def test_service_discards_corrupt_cache_entry(db_session, store, three_products):
    service = ProductListingService(repository=ProductRepository(db_session), store=store)
    query = parse_listing_query()
    await store.set_with_expiry(listing_cache_key(query), "{not json", 60)

    result = await service.list(query)
    assert len(result.data) == 3
