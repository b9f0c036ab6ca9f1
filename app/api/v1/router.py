from fastapi import APIRouter

from app.api.v1.endpoints.health import router as health_router
from app.api.v1.endpoints.products import router as products_router
from app.api.v1.endpoints.webhooks import router as webhooks_router
from app.api.v1.endpoints.external import router as external_router


router = APIRouter(prefix="/v1")
router.include_router(health_router, tags=["health"])
router.include_router(products_router, tags=["products"])
router.include_router(webhooks_router, tags=["webhooks"])
router.include_router(external_router, tags=["external"])
