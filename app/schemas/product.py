from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    category: str
    price: Decimal
    created_at: datetime
    updated_at: datetime


class ProductListOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data: list[ProductOut]
    next_cursor: str | None = Field(default=None, alias="nextCursor")
    has_more: bool = Field(alias="hasMore")
