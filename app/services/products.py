from __future__ import annotations

import logging

import pydantic
from fastapi import Depends
from opentelemetry import trace
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db import get_db
from app.core.errors import CoordinationStoreError, UpstreamUnavailable
from app.models.product import Product
from app.schemas.product import ProductListOut
from app.services.coordination import CoordinationStore, get_coordination_store
from app.services.product_query import (
    ListingQuery,
    build_listing_result,
    build_listing_statement,
    query_fingerprint,
)


log = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "cache:products:"


def listing_cache_key(query: ListingQuery) -> str:
    return CACHE_KEY_PREFIX + query_fingerprint(query)


class ProductRepository:
    """Ordered record store: runs keyset scans against the products table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def fetch_page(self, query: ListingQuery) -> list[Product]:
        dialect_name = self.db.get_bind().dialect.name
        stmt = build_listing_statement(query, dialect_name=dialect_name)
        try:
            return list((await self.db.execute(stmt)).scalars().all())
        except (OperationalError, InterfaceError, OSError) as e:
            log.exception("product query failed")
            raise UpstreamUnavailable("Product store unavailable") from e


class ProductListingService:
    """
    Cache-aside listing.

    - Each normalized query (cursor included) is cached separately for a fixed TTL.
    - Nothing invalidates entries on product writes; staleness is bounded by the TTL.
    - The coordination store is optional for reads: when it is down we serve
      straight from the database, and a failed cache write never fails the request.
    - No lock spans the query and the cache write, so concurrent misses may
      each run the query.
    """

    def __init__(
        self,
        *,
        repository: ProductRepository,
        store: CoordinationStore,
        cache_ttl_seconds: int = 60,
    ):
        self.repository = repository
        self.store = store
        self.cache_ttl_seconds = cache_ttl_seconds

    async def list(self, query: ListingQuery) -> ProductListOut:
        key = listing_cache_key(query)

        cached = await self._read_cache(key)
        trace.get_current_span().set_attribute("catalog.listing.cache_hit", cached is not None)
        if cached is not None:
            log.debug("listing cache hit %s", key)
            return cached

        log.debug("listing cache miss %s", key)
        rows = await self.repository.fetch_page(query)
        result = build_listing_result(rows, query)

        await self._write_cache(key, result)
        return result

    async def _read_cache(self, key: str) -> ProductListOut | None:
        try:
            raw = await self.store.get(key)
        except CoordinationStoreError as e:
            log.warning("listing cache read failed, serving from database: %s", e)
            return None

        if raw is None:
            return None

        try:
            return ProductListOut.model_validate_json(raw)
        except pydantic.ValidationError:
            log.warning("discarding unreadable listing cache entry %s", key)
            return None

    async def _write_cache(self, key: str, result: ProductListOut) -> None:
        try:
            await self.store.set_with_expiry(key, result.model_dump_json(by_alias=True), self.cache_ttl_seconds)
        except CoordinationStoreError as e:
            log.warning("listing cache write failed: %s", e)


async def get_listing_service(
    db: AsyncSession = Depends(get_db),
    store: CoordinationStore = Depends(get_coordination_store),
) -> ProductListingService:
    return ProductListingService(
        repository=ProductRepository(db),
        store=store,
        cache_ttl_seconds=settings.listing_cache_ttl_seconds,
    )
