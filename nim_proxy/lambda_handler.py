"""AWS Lambda entry point.

Mangum translates API Gateway HTTP API (v2) events into ASGI,
letting the FastAPI app run unchanged on Lambda. Streaming chat
completions are rejected there; see the chat completions route.
"""

from mangum import Mangum

from nim_proxy.config.settings import Settings
from nim_proxy.logging.audit import configure_logging
from nim_proxy.main import create_app

_settings = Settings()
configure_logging(_settings)

handler = Mangum(create_app(_settings), lifespan="off")
