"""HTTP transport shared by the vendor clients through composition.

Owns one httpx.AsyncClient per provider instance and translates transport
failures and non-success statuses into the typed error taxonomy.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from typing import Any

import httpx

from switchboard.clients.base import ConnectionResult
from switchboard.core.errors import (
    ConfigurationError,
    ProviderConnectionError,
    ProviderTimeoutError,
    UpstreamErrorKind,
    UpstreamHTTPError,
)

logger = logging.getLogger(__name__)

_STATUS_KINDS = {
    401: UpstreamErrorKind.INVALID_CREDENTIAL,
    403: UpstreamErrorKind.INVALID_CREDENTIAL,
    404: UpstreamErrorKind.MODEL_NOT_FOUND,
    429: UpstreamErrorKind.RATE_LIMITED,
}


def classify_status(status_code: int) -> UpstreamErrorKind:
    return _STATUS_KINDS.get(status_code, UpstreamErrorKind.GENERIC)


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
        if data.get("message"):
            return str(data["message"])
    if isinstance(data, list) and data and isinstance(data[0], dict):
        # Gemini wraps errors in a single-element array on streaming endpoints
        error = data[0].get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return response.reason_phrase


def upstream_error(response: httpx.Response, provider_id: str, model: str | None) -> UpstreamHTTPError:
    detail = _error_detail(response)
    return UpstreamHTTPError(
        detail,
        status_code=response.status_code,
        kind=classify_status(response.status_code),
        provider_id=provider_id,
        model=model,
    )


@contextmanager
def translate_transport_errors(provider_id: str) -> Iterator[None]:
    """Re-raise httpx transport failures as typed provider errors."""
    try:
        yield
    except httpx.TimeoutException as e:
        raise ProviderTimeoutError(
            f"{provider_id} request timed out", provider_id=provider_id
        ) from e
    except httpx.TransportError as e:
        raise ProviderConnectionError(
            f"{provider_id} connection failed: {e}", provider_id=provider_id
        ) from e


class HttpTransport:
    """Per-instance HTTP session bound to one vendor base URL."""

    def __init__(
        self,
        *,
        provider_id: str,
        base_url: str,
        headers: dict[str, str],
        timeout_ms: int,
        probe_timeout_ms: int = 10000,
    ) -> None:
        self.provider_id = provider_id
        self.base_url = base_url.rstrip("/")
        self.probe_timeout = probe_timeout_ms / 1000
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout_ms / 1000),
        )

    async def post_json(self, path: str, body: dict[str, Any], *, model: str | None) -> Any:
        with translate_transport_errors(self.provider_id):
            response = await self.client.post(path, json=body)
        if not response.is_success:
            raise upstream_error(response, self.provider_id, model)
        return response.json()

    async def get_json(self, path: str, *, timeout: float | None = None) -> Any:
        with translate_transport_errors(self.provider_id):
            if timeout is None:
                response = await self.client.get(path)
            else:
                response = await self.client.get(path, timeout=timeout)
        if not response.is_success:
            raise upstream_error(response, self.provider_id, None)
        return response.json()

    @asynccontextmanager
    async def stream(
        self, path: str, body: dict[str, Any], *, model: str | None
    ) -> AsyncIterator[AsyncIterator[str]]:
        """POST body and yield the decoded response text pieces."""
        with translate_transport_errors(self.provider_id):
            async with self.client.stream("POST", path, json=body) as response:
                if not response.is_success:
                    await response.aread()
                    raise upstream_error(response, self.provider_id, model)
                yield self._text_pieces(response)

    async def _text_pieces(self, response: httpx.Response) -> AsyncIterator[str]:
        with translate_transport_errors(self.provider_id):
            async for piece in response.aiter_text():
                yield piece

    async def probe(self, path: str) -> ConnectionResult:
        """GET path with the short probe timeout; never raises."""
        start = time.perf_counter()
        try:
            response = await self.client.get(path, timeout=self.probe_timeout)
        except httpx.HTTPError as e:
            logger.debug(f"{self.provider_id} connection test failed: {e}")
            return ConnectionResult(
                connected=False,
                latency_ms=(time.perf_counter() - start) * 1000,
                error=str(e) or e.__class__.__name__,
            )
        latency_ms = (time.perf_counter() - start) * 1000
        if response.is_success:
            return ConnectionResult(connected=True, latency_ms=latency_ms, status_code=response.status_code)
        return ConnectionResult(
            connected=False,
            latency_ms=latency_ms,
            status_code=response.status_code,
            error=f"HTTP {response.status_code}: {_error_detail(response)}",
        )

    async def aclose(self) -> None:
        await self.client.aclose()


def validate_endpoint(provider_id: str, base_url: str, default_model: str) -> None:
    """Required-field check run by each client's initialize()."""
    try:
        url = httpx.URL(base_url)
    except httpx.InvalidURL as e:
        raise ConfigurationError(
            f"Invalid base URL for {provider_id}: {base_url!r}", provider_id=provider_id
        ) from e
    if url.scheme not in ("http", "https") or not url.host:
        raise ConfigurationError(
            f"Invalid base URL for {provider_id}: {base_url!r}", provider_id=provider_id
        )
    if not default_model:
        raise ConfigurationError(
            f"A default model is required for {provider_id}", provider_id=provider_id
        )
