from __future__ import annotations

import logging
from typing import Any

from fastapi import Request

from app.core.errors import TransportFailure, UpstreamRejected
from app.services.http_client import CatalogHttpClient
from app.services.retry import retry_async
from app.services.token_cache import SingleFlightTokenCache


log = logging.getLogger(__name__)


class ExternalApiService:
    """Authenticated calls to the external API, retried on transport failures."""

    def __init__(
        self,
        http: CatalogHttpClient,
        token_cache: SingleFlightTokenCache,
        *,
        url: str,
        max_retries: int = 3,
        initial_delay_seconds: float = 0.5,
    ):
        self.http = http
        self.token_cache = token_cache
        self.url = url
        self.max_retries = max_retries
        self.initial_delay_seconds = initial_delay_seconds

    async def _fetch_once(self) -> dict[str, Any]:
        # CredentialRefreshFailed escapes retry_async untouched
        token = await self.token_cache.get_token()
        result = await self.http.get_json(url=self.url, headers={"Authorization": f"Bearer {token}"})

        if result.ok:
            return result.detail
        if result.retryable:
            raise TransportFailure(f"{result.error_code}: {result.error_message}", status=result.status_code)
        raise UpstreamRejected(f"external API answered {result.status_code}")

    async def fetch_data(self) -> dict[str, Any]:
        return await retry_async(
            self._fetch_once,
            retries=self.max_retries,
            initial_delay=self.initial_delay_seconds,
        )


def get_external_service(request: Request) -> ExternalApiService:
    return request.app.state.external_service
