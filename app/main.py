import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.v1.router import router as v1_router
from app.core.config import settings
from app.core.errors import setup_error_handlers
from app.core.middleware import rate_limit_middleware
from app.core.telemetry import setup_telemetry
from app.services.coordination import CoordinationStore
from app.services.external import ExternalApiService
from app.services.http_client import CatalogHttpClient
from app.services.rate_limit import FixedWindowRateLimiter
from app.services.token_cache import OAuthClientCredentialsSource, SingleFlightTokenCache
from app.services.webhooks import CeleryWebhookPublisher
from worker.celery_app import celery


log = logging.getLogger(__name__)


def configure_state(app: FastAPI, *, store: CoordinationStore, http: CatalogHttpClient) -> None:
    """Wire the per-process collaborators that endpoints and middleware read from app.state."""
    source = OAuthClientCredentialsSource(
        http,
        token_url=settings.oauth_token_url,
        client_id=settings.oauth_client_id,
        client_secret=settings.oauth_client_secret.get_secret_value(),
        scope=settings.oauth_scope,
    )
    token_cache = SingleFlightTokenCache(
        store,
        source,
        provider=settings.oauth_provider,
        expiry_margin_seconds=settings.token_expiry_margin_seconds,
    )

    app.state.coordination_store = store
    app.state.rate_limiter = FixedWindowRateLimiter(
        store,
        limit=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.state.token_cache = token_cache
    app.state.external_service = ExternalApiService(
        http,
        token_cache,
        url=settings.external_api_url,
        max_retries=settings.external_max_retries,
        initial_delay_seconds=settings.external_retry_initial_delay_seconds,
    )
    app.state.webhook_publisher = CeleryWebhookPublisher(celery, queue=settings.webhook_queue)


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = CoordinationStore.from_url(settings.redis_url, timeout_seconds=settings.redis_timeout_seconds)
    http = CatalogHttpClient(timeout_seconds=settings.external_timeout_seconds)
    configure_state(app, store=store, http=http)
    log.info("%s started (env=%s)", settings.service_name, settings.env)
    try:
        yield
    finally:
        await http.aclose()
        await store.aclose()


logging.basicConfig(level=settings.log_level)

app = FastAPI(title="Catalog API", version="0.1.0", lifespan=lifespan)
app.middleware("http")(rate_limit_middleware)
setup_error_handlers(app)

setup_telemetry(app)
app.include_router(v1_router)
