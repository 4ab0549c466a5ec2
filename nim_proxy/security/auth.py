"""Shared-secret authentication for proxy clients.

When CUSTOM_AUTH_TOKEN is set, a request must present it either as
``Authorization: Bearer <token>`` or in the custom header named by
CUSTOM_AUTH_HEADER. When it is unset every request is let through.
"""

import hmac
from collections.abc import Mapping

from fastapi import HTTPException, Request

from nim_proxy.config.settings import Settings
from nim_proxy.logging.audit import get_audit_logger

BEARER_PREFIX = "Bearer "


def _matches(candidate: str | None, secret: str) -> bool:
    if candidate is None:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), secret.encode("utf-8"))


def is_authorized(headers: Mapping[str, str], settings: Settings) -> bool:
    """Decide whether a request with these headers may reach the upstream.

    Header names are matched case-insensitively, token values exactly.
    An Authorization header with a scheme other than Bearer is ignored
    and the custom header is checked instead.
    """
    if not settings.auth_enabled:
        return True

    secret = settings.custom_auth_token
    lowered = {name.lower(): value for name, value in headers.items()}

    authorization = lowered.get("authorization")
    if authorization is not None and authorization.startswith(BEARER_PREFIX):
        if _matches(authorization[len(BEARER_PREFIX):], secret):
            return True

    return _matches(lowered.get(settings.custom_auth_header.lower()), secret)


async def verify_client(request: Request) -> None:
    """FastAPI dependency that rejects unauthenticated requests with 401."""
    settings: Settings = request.app.state.settings
    if is_authorized(request.headers, settings):
        return

    get_audit_logger().warning(
        "Unauthorized request",
        extra={"audit_data": {
            "client_ip": request.client.host if request.client else "unknown",
            "path": request.url.path,
        }},
    )
    raise HTTPException(status_code=401, detail="Unauthorized")
