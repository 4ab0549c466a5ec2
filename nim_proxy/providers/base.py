"""Upstream result types and the provider interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx


@dataclass
class ProviderResponse:
    status_code: int
    body: Any                      # Decoded JSON document
    raw: bytes | None = None       # Set instead of body when upstream sent non-JSON
    media_type: str | None = None  # Upstream Content-Type for raw bodies


@dataclass
class ProviderStream:
    response: httpx.Response   # Open 2xx response, body not yet read

    @property
    def status_code(self) -> int:
        return self.response.status_code


@dataclass
class ProviderError:
    status_code: int | None    # None when the upstream never answered
    error: Any | None          # Upstream error payload, if any
    reason: str = ""           # Transport error or status line, for logging


UpstreamResult = ProviderResponse | ProviderError
UpstreamStreamResult = ProviderStream | ProviderError


class UpstreamProvider(ABC):
    """Base class for upstream inference API clients.

    Implementations never raise for upstream failures; they return a
    ProviderError so the route can map it to a caller-facing response.
    """

    @abstractmethod
    async def list_models(self) -> UpstreamResult:
        ...

    @abstractmethod
    async def chat_completion(self, body: Any) -> UpstreamResult:
        """Send a chat completion request and wait for the full response."""
        ...

    @abstractmethod
    async def open_chat_stream(self, body: Any) -> UpstreamStreamResult:
        """Start a streaming chat completion.

        Returns once response headers are available. The caller owns the
        returned stream and must close it.
        """
        ...

    async def close(self) -> None:
        """Cleanup resources. Override if provider holds connections."""
        pass
