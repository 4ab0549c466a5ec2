"""NVIDIA NIM provider implementation."""

from typing import Any

import httpx

from nim_proxy.config.settings import Settings
from nim_proxy.providers.base import (
    ProviderError,
    ProviderResponse,
    ProviderStream,
    UpstreamProvider,
    UpstreamResult,
    UpstreamStreamResult,
)


def _decode_body(response: httpx.Response) -> Any | None:
    """Decode a read response body as JSON, falling back to text."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _to_result(response: httpx.Response) -> UpstreamResult:
    if response.is_success:
        try:
            return ProviderResponse(status_code=response.status_code, body=response.json())
        except ValueError:
            return ProviderResponse(
                status_code=response.status_code,
                body=None,
                raw=response.content,
                media_type=response.headers.get("content-type"),
            )
    return ProviderError(
        status_code=response.status_code,
        error=_decode_body(response),
        reason=f"Upstream returned {response.status_code}",
    )


class NIMProvider(UpstreamProvider):
    """Forwards requests to the NIM API with the server-side key."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self._settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    self._settings.upstream_timeout,
                    connect=self._settings.upstream_connect_timeout,
                ),
                transport=self._transport,
            )
        return self._client

    def _url(self, path: str) -> str:
        return f"{self._settings.nim_base_url.rstrip('/')}{path}"

    def _build_headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._settings.nim_api_key}",
        }

    async def list_models(self) -> UpstreamResult:
        client = await self._get_client()
        try:
            response = await client.get(self._url("/models"), headers=self._build_headers())
        except httpx.HTTPError as e:
            return ProviderError(status_code=None, error=None, reason=str(e) or type(e).__name__)
        return _to_result(response)

    async def chat_completion(self, body: Any) -> UpstreamResult:
        client = await self._get_client()
        try:
            response = await client.post(
                self._url("/chat/completions"), json=body, headers=self._build_headers()
            )
        except httpx.HTTPError as e:
            return ProviderError(status_code=None, error=None, reason=str(e) or type(e).__name__)
        return _to_result(response)

    async def open_chat_stream(self, body: Any) -> UpstreamStreamResult:
        client = await self._get_client()
        request = client.build_request(
            "POST", self._url("/chat/completions"), json=body, headers=self._build_headers()
        )
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            return ProviderError(status_code=None, error=None, reason=str(e) or type(e).__name__)

        if response.is_success:
            return ProviderStream(response=response)

        # Error bodies are small; read them so the payload can be relayed
        try:
            await response.aread()
            error = _decode_body(response)
        except httpx.HTTPError:
            error = None
        finally:
            await response.aclose()
        return ProviderError(
            status_code=response.status_code,
            error=error,
            reason=f"Upstream returned {response.status_code}",
        )

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
