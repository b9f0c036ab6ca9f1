from app.models.base import Base  # noqa: F401

from app.models.product import Product  # noqa: F401
