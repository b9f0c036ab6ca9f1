from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from app.core.crypto import decrypt_text, encrypt_text
from app.core.errors import CoordinationStoreError, CredentialRefreshFailed
from app.core.telemetry import get_tracer
from app.services.coordination import CoordinationStore
from app.services.http_client import CatalogHttpClient


log = logging.getLogger(__name__)
tracer = get_tracer(__name__)

MIN_TOKEN_TTL_SECONDS = 1


def token_key(provider: str) -> str:
    return f"token:{provider}"


@dataclass(frozen=True)
class IssuedCredential:
    access_token: str
    expires_in: int  # seconds


class CredentialSource(Protocol):
    """Issues a fresh bearer credential. Raises CredentialRefreshFailed."""

    async def fetch(self) -> IssuedCredential:
        ...


class OAuthClientCredentialsSource:
    """OAuth2 client-credentials grant against a token endpoint."""

    def __init__(
        self,
        http: CatalogHttpClient,
        *,
        token_url: str,
        client_id: str,
        client_secret: str,
        scope: str | None = None,
    ):
        self.http = http
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.scope = scope

    async def fetch(self) -> IssuedCredential:
        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        if self.scope:
            form["scope"] = self.scope

        result = await self.http.post_form(url=self.token_url, form_body=form)
        if not result.ok:
            raise CredentialRefreshFailed(f"token endpoint failed: {result.error_code} {result.error_message}")

        access_token = result.detail.get("access_token")
        expires_in = result.detail.get("expires_in")
        if not isinstance(access_token, str) or not access_token:
            raise CredentialRefreshFailed("token endpoint response has no access_token")
        if isinstance(expires_in, bool) or not isinstance(expires_in, (int, float)) or expires_in <= 0:
            raise CredentialRefreshFailed("token endpoint response has no valid expires_in")

        return IssuedCredential(access_token=access_token, expires_in=int(expires_in))


class SingleFlightTokenCache:
    """
    Shared bearer token with at most one refresh in flight per process.

    - The token itself lives in the coordination store (encrypted), so every
      instance reuses it until it is close to expiry.
    - Concurrent callers in this process that miss the cache all await the
      same refresh task. Other instances may refresh in parallel; that is
      accepted.
    - The in-flight slot is cleared when the task finishes, whatever the
      outcome, so a failed refresh never blocks later callers.
    - Refresh failures are not retried here; every waiter gets the error.
    """

    def __init__(
        self,
        store: CoordinationStore,
        source: CredentialSource,
        *,
        provider: str,
        expiry_margin_seconds: int = 30,
    ):
        self.store = store
        self.source = source
        self.provider = provider
        self.expiry_margin_seconds = expiry_margin_seconds
        self._lock = asyncio.Lock()
        self._in_flight: asyncio.Task[str] | None = None

    async def get_token(self) -> str:
        cached = await self._read_cached()
        if cached is not None:
            return cached

        async with self._lock:
            task = self._in_flight
            if task is None or task.done():
                # a refresh may have finished while our cache read was pending
                cached = await self._read_cached()
                if cached is not None:
                    return cached
                log.info("refreshing %s credential", self.provider)
                task = asyncio.create_task(self._refresh())
                task.add_done_callback(self._clear_slot)
                self._in_flight = task
            else:
                log.debug("joining in-flight %s credential refresh", self.provider)

        # shield: a cancelled waiter must not cancel the refresh others share
        return await asyncio.shield(task)

    def _clear_slot(self, task: asyncio.Task) -> None:
        if self._in_flight is task:
            self._in_flight = None

    async def _refresh(self) -> str:
        with tracer.start_as_current_span("credential.refresh") as span:
            span.set_attribute("credential.provider", self.provider)
            issued = await self.source.fetch()

        ttl = max(MIN_TOKEN_TTL_SECONDS, issued.expires_in - self.expiry_margin_seconds)
        try:
            await self.store.set_with_expiry(token_key(self.provider), encrypt_text(issued.access_token), ttl)
        except CoordinationStoreError as e:
            log.warning("could not cache %s credential: %s", self.provider, e)

        return issued.access_token

    async def _read_cached(self) -> str | None:
        try:
            raw = await self.store.get(token_key(self.provider))
        except CoordinationStoreError as e:
            log.warning("credential cache read failed for %s, refreshing: %s", self.provider, e)
            return None

        if raw is None:
            return None

        token = decrypt_text(raw)
        if token is None:
            log.warning("discarding undecryptable %s credential from cache", self.provider)
        return token
