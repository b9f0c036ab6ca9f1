from fastapi import APIRouter, Depends, Query

from app.schemas.product import ProductListOut
from app.services.product_query import parse_listing_query
from app.services.products import ProductListingService, get_listing_service

router = APIRouter()


# Numeric params are taken as strings: unparseable price bounds are dropped,
# not rejected with a 422.
@router.get("/products", response_model=ProductListOut)
async def list_products(
    limit: str | None = Query(default=None),
    cursor: str | None = Query(default=None),
    sort_by: str | None = Query(default=None, alias="sortBy"),
    sort_order: str | None = Query(default=None, alias="sortOrder"),
    category: str | None = Query(default=None),
    min_price: str | None = Query(default=None, alias="minPrice"),
    max_price: str | None = Query(default=None, alias="maxPrice"),
    q: str | None = Query(default=None),
    service: ProductListingService = Depends(get_listing_service),
) -> ProductListOut:
    query = parse_listing_query(
        limit=limit,
        cursor=cursor,
        sort_by=sort_by,
        sort_order=sort_order,
        category=category,
        min_price=min_price,
        max_price=max_price,
        q=q,
    )
    return await service.list(query)
