"""Shared fixtures for the NIM proxy test suite."""

import asyncio
import json

import httpx
import pytest

from nim_proxy.config.settings import Settings
from nim_proxy.logging.audit import get_audit_logger

UPSTREAM_KEY = "nvapi-test-upstream"
SHARED_SECRET = "proxy-secret-123"


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep real env vars and any local .env file out of the tests."""
    for name in (
        "NIM_API_KEY", "NIM_BASE_URL", "CUSTOM_AUTH_TOKEN", "CUSTOM_AUTH_HEADER",
        "HOST", "PORT", "UPSTREAM_TIMEOUT", "UPSTREAM_CONNECT_TIMEOUT",
        "LOG_LEVEL", "AUDIT_LOG_FILE", "AWS_LAMBDA_FUNCTION_NAME",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def reset_audit_logger():
    yield
    logger = get_audit_logger()
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and build fresh Settings.

    Usage:
        settings = override_settings(NIM_API_KEY="k", CUSTOM_AUTH_TOKEN="s")
    """
    def _override(**kwargs) -> Settings:
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        return Settings()

    return _override


@pytest.fixture
def settings() -> Settings:
    """Settings with an upstream key and auth disabled."""
    return Settings(nim_api_key=UPSTREAM_KEY)


@pytest.fixture
def secured_settings() -> Settings:
    """Settings with the shared secret enabled."""
    return Settings(nim_api_key=UPSTREAM_KEY, custom_auth_token=SHARED_SECRET)


@pytest.fixture
def chat_request_body() -> dict:
    """Standard chat completions request body."""
    return {
        "model": "meta/llama-3.1-8b-instruct",
        "messages": [
            {"role": "system", "content": "You are a helpful assistant."},
            {"role": "user", "content": "Hello, how are you?"},
        ],
    }


class RecordingStream(httpx.AsyncByteStream):
    """Upstream body that yields chunks on demand and records closing.

    If ``gate`` is given, the stream waits on it before the second chunk,
    so a test can observe what the relay delivered before the upstream
    finished. If ``fail_after`` is set, the stream raises ReadError once
    that many chunks have been sent.
    """

    def __init__(self, chunks: list[bytes], gate: asyncio.Event | None = None,
                 fail_after: int | None = None):
        self.chunks = chunks
        self.gate = gate
        self.fail_after = fail_after
        self.sent = 0
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            if self.fail_after is not None and self.sent >= self.fail_after:
                raise httpx.ReadError("Connection reset by peer")
            if self.gate is not None and self.sent == 1:
                await self.gate.wait()
            self.sent += 1
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


def make_sse_chunks(text: str, chunk_size: int = 5) -> list[bytes]:
    """Build raw SSE event bytes for a streamed completion of ``text``."""
    chunks = []
    for i in range(0, len(text), chunk_size):
        data = json.dumps({
            "id": "chatcmpl-test",
            "object": "chat.completion.chunk",
            "choices": [{"index": 0, "delta": {"content": text[i:i + chunk_size]}, "finish_reason": None}],
        })
        chunks.append(f"data: {data}\n\n".encode())
    chunks.append(b"data: [DONE]\n\n")
    return chunks
