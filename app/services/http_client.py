from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Literal, Mapping

import httpx


HttpMethod = Literal["GET", "POST"]

# statuses worth another attempt; everything else non-2xx is final
RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class HttpResult:
    ok: bool
    status_code: int | None
    detail: dict[str, Any]

    error_code: str | None = None
    error_message: str | None = None
    retryable: bool = False

    elapsed_ms: int | None = None


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}...(truncated, {len(text)} chars)"


def _read_detail(resp: httpx.Response, *, max_chars: int) -> dict[str, Any]:
    content_type = (resp.headers.get("content-type") or "").lower()
    if "application/json" in content_type or content_type.endswith("+json"):
        try:
            parsed = resp.json()
        except ValueError:
            return {"raw": _truncate(resp.text, max_chars)}
        # upstreams may answer with a bare list or scalar
        return parsed if isinstance(parsed, dict) else {"data": parsed}
    return {"raw": _truncate(resp.text, max_chars), "content_type": resp.headers.get("content-type")}


def _transport_error(code: str, exc: Exception) -> HttpResult:
    return HttpResult(
        ok=False,
        status_code=None,
        detail={"error": code.lower()},
        error_code=code,
        error_message=str(exc) or type(exc).__name__,
        retryable=True,
    )


class CatalogHttpClient:
    """
    Outbound HTTP for the OAuth token endpoint and the external API.

    One pooled AsyncClient per process. Never raises for HTTP or network
    failures: every call returns an HttpResult whose `retryable` flag tells
    the caller whether retry_async should try again.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 3.0,
        max_response_body_chars: int = 20_000,
        default_headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._max_body = max_response_body_chars
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            headers=dict(default_headers or {}),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: HttpMethod,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, str] | None = None,
        form_body: Mapping[str, str] | None = None,
    ) -> HttpResult:
        started = time.perf_counter()
        try:
            resp = await self._client.request(
                method,
                url,
                headers=dict(headers or {}),
                params=dict(params or {}),
                data=dict(form_body) if form_body is not None else None,
            )
        except httpx.TimeoutException as e:
            return _transport_error("TIMEOUT", e)
        except httpx.RequestError as e:
            # refused connections, DNS, TLS
            return _transport_error("REQUEST_ERROR", e)

        detail = _read_detail(resp, max_chars=self._max_body)
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        if resp.is_success:
            return HttpResult(ok=True, status_code=resp.status_code, detail=detail, elapsed_ms=elapsed_ms)

        return HttpResult(
            ok=False,
            status_code=resp.status_code,
            detail=detail,
            error_code=f"HTTP_{resp.status_code}",
            error_message=f"HTTP {resp.status_code}",
            retryable=resp.status_code in RETRYABLE_STATUSES,
            elapsed_ms=elapsed_ms,
        )

    async def get_json(self, *, url: str, headers: Mapping[str, str] | None = None, params: Mapping[str, str] | None = None) -> HttpResult:
        return await self.request("GET", url, headers=headers, params=params)

    async def post_form(self, *, url: str, form_body: Mapping[str, str], headers: Mapping[str, str] | None = None) -> HttpResult:
        return await self.request("POST", url, headers=headers, form_body=form_body)
