"""Forwarder: turns upstream results into caller-facing responses.

Upstream failures arrive as ProviderError values and are mapped here,
at the route boundary, to ``{"error": ...}`` JSON responses that mirror
the upstream status code when one is known.
"""

from collections.abc import AsyncGenerator
from typing import Any

import httpx
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask
from starlette.responses import Response

from nim_proxy.logging.audit import UpstreamTimer, get_audit_logger
from nim_proxy.providers.base import ProviderError, ProviderResponse, ProviderStream, UpstreamProvider

MODELS_FAILURE_MESSAGE = "Failed to fetch models"
CHAT_FAILURE_MESSAGE = "Failed to process chat completion"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def error_response(error: ProviderError, fallback_message: str, headers: dict | None = None) -> JSONResponse:
    """Build the caller-facing response for an upstream failure.

    Upstream payloads already shaped as ``{"error": ...}`` pass through
    unchanged; anything else is wrapped in that shape.
    """
    if isinstance(error.error, dict) and "error" in error.error:
        content = error.error
    elif error.error is not None:
        content = {"error": error.error}
    else:
        content = {"error": {"message": fallback_message}}
    return JSONResponse(
        status_code=error.status_code or 500,
        content=content,
        headers=headers,
    )


def success_response(result: ProviderResponse, headers: dict | None = None) -> Response:
    """Return a 2xx upstream body: JSON re-rendered, anything else byte for byte."""
    if result.raw is not None:
        return Response(
            content=result.raw,
            status_code=result.status_code,
            media_type=result.media_type,
            headers=headers,
        )
    return JSONResponse(status_code=result.status_code, content=result.body, headers=headers)


def is_stream_request(body: Any) -> bool:
    """Only a JSON boolean ``true`` selects streaming."""
    return isinstance(body, dict) and body.get("stream") is True


async def relay_stream(response: httpx.Response) -> AsyncGenerator[bytes, None]:
    """Copy upstream bytes to the caller one chunk at a time.

    Each chunk is handed to the ASGI server before the next one is read, so
    a slow caller throttles upstream reads. The upstream response is closed
    however the relay ends: normal completion, caller disconnect
    (cancellation) or an upstream drop, which is re-raised so the server
    aborts the caller's connection.
    """
    try:
        async for chunk in response.aiter_bytes():
            yield chunk
    except httpx.HTTPError as e:
        get_audit_logger().warning(
            "Upstream stream interrupted",
            extra={"audit_data": {"reason": str(e) or type(e).__name__}},
        )
        raise
    finally:
        await response.aclose()


async def list_models(provider: UpstreamProvider, headers: dict) -> Response:
    logger = get_audit_logger()

    with UpstreamTimer() as timer:
        result = await provider.list_models()

    if isinstance(result, ProviderError):
        logger.error(
            "Error fetching models",
            extra={"audit_data": {
                "upstream_status": result.status_code,
                "error": result.error if result.error is not None else result.reason,
                "latency_ms": timer.elapsed_ms,
            }},
        )
        return error_response(result, MODELS_FAILURE_MESSAGE, headers)

    logger.info(
        "Models listed",
        extra={"audit_data": {"upstream_status": result.status_code, "latency_ms": timer.elapsed_ms}},
    )
    return success_response(result, headers)


async def chat_completion(provider: UpstreamProvider, body: Any, headers: dict) -> Response:
    logger = get_audit_logger()
    stream = is_stream_request(body)
    model = body.get("model", "unknown") if isinstance(body, dict) else "unknown"

    with UpstreamTimer() as timer:
        if stream:
            result = await provider.open_chat_stream(body)
        else:
            result = await provider.chat_completion(body)

    if isinstance(result, ProviderError):
        logger.error(
            "Error in chat completions",
            extra={"audit_data": {
                "model": model,
                "stream": stream,
                "upstream_status": result.status_code,
                "error": result.error if result.error is not None else result.reason,
                "latency_ms": timer.elapsed_ms,
            }},
        )
        return error_response(result, CHAT_FAILURE_MESSAGE, headers)

    logger.info(
        "Request proxied",
        extra={"audit_data": {
            "model": model,
            "stream": stream,
            "upstream_status": result.status_code,
            "latency_ms": timer.elapsed_ms,
        }},
    )

    if isinstance(result, ProviderStream):
        return StreamingResponse(
            relay_stream(result.response),
            status_code=result.status_code,
            media_type="text/event-stream",
            headers={**SSE_HEADERS, **headers},
            # Covers a caller that disconnects before the first chunk is pulled
            background=BackgroundTask(result.response.aclose),
        )

    return success_response(result, headers)
