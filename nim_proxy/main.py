"""NVIDIA NIM Proxy — FastAPI application entry point.

An authenticating reverse proxy that forwards the OpenAI-compatible
models and chat completions endpoints to the NIM API, signing each
request with the server-side key.
"""

import json
import sys
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from nim_proxy.config.settings import ConfigurationError, Settings, check_settings
from nim_proxy.logging.audit import (
    REQUEST_ID_HEADER,
    configure_logging,
    get_audit_logger,
    new_request_id,
)
from nim_proxy.providers.base import UpstreamProvider
from nim_proxy.providers.nim import NIMProvider
from nim_proxy.proxy import handler
from nim_proxy.security.auth import verify_client

VERSION = "1.0.0"
SERVICE_NAME = "NVIDIA NIM Proxy"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    get_audit_logger().info("Proxy started")
    yield
    await app.state.provider.close()
    get_audit_logger().info("Proxy stopped")


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    headers = dict(getattr(exc, "headers", None) or {})
    rid = getattr(request.state, "request_id", None)
    if rid:
        headers[REQUEST_ID_HEADER] = rid
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=headers or None,
    )


async def assign_request_id(request: Request) -> None:
    """First dependency of every proxied route, so auth failures are tagged too."""
    request.state.request_id = new_request_id()


def _response_headers(request: Request) -> dict:
    return {REQUEST_ID_HEADER: request.state.request_id}


def _get_provider(request: Request) -> UpstreamProvider:
    return request.app.state.provider


def create_app(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    """Build the proxy application.

    Raises ConfigurationError if the settings lack an upstream key.
    ``transport`` overrides the upstream HTTP transport.
    """
    check_settings(settings)

    app = FastAPI(
        title=SERVICE_NAME,
        description="Authenticating proxy for the NVIDIA NIM API",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.provider = NIMProvider(settings, transport=transport)
    app.add_exception_handler(HTTPException, http_exception_handler)

    proxied = [Depends(assign_request_id), Depends(verify_client)]

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": SERVICE_NAME}

    @app.get("/v1/models", dependencies=proxied)
    async def models(request: Request, provider: UpstreamProvider = Depends(_get_provider)):
        return await handler.list_models(provider, _response_headers(request))

    @app.post("/v1/chat/completions", dependencies=proxied)
    async def chat_completions(request: Request, provider: UpstreamProvider = Depends(_get_provider)):
        """Proxy endpoint mirroring the OpenAI chat completions API.

        Pipeline: Request id -> Auth -> Parse -> Forward -> Relay (JSON or SSE)
        """
        headers = _response_headers(request)

        raw = await request.body()
        try:
            body = json.loads(raw) if raw else {}
        except ValueError:
            body = None
        # Bare scalars such as `null` are refused, as a strict JSON body parser would
        if not isinstance(body, (dict, list)):
            return JSONResponse(status_code=400, content={"error": "Invalid JSON body"}, headers=headers)

        # API Gateway + Mangum cannot relay server-sent events
        if handler.is_stream_request(body) and request.app.state.settings.lambda_mode:
            return JSONResponse(
                status_code=400,
                content={"error": "Streaming is not supported in Lambda deployments"},
                headers=headers,
            )

        return await handler.chat_completion(provider, body, headers)

    return app


def run() -> None:
    """Console entry point: load settings, then serve with uvicorn."""
    settings = Settings()
    configure_logging(settings)
    logger = get_audit_logger()

    try:
        app = create_app(settings)
    except ConfigurationError as e:
        logger.error(f"ERROR: {e}")
        sys.exit(1)

    logger.info(
        f"{SERVICE_NAME} running on port {settings.port}",
        extra={"audit_data": {"host": settings.host, "port": settings.port}},
    )
    logger.info(
        "Custom auth: "
        + ("ENABLED (Bearer token or custom header)" if settings.auth_enabled else "DISABLED")
    )
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
