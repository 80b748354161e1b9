# tests/conftest.py
import json
import os
from typing import List

import pytest
from fastapi.testclient import TestClient

from interview_trainer.config import get_settings


@pytest.fixture
def test_env_vars():
    """Set up test environment variables."""
    os.environ["ENVIRONMENT"] = "testing"
    os.environ["DEBUG"] = "true"
    os.environ["APP_NAME"] = "Interview Trainer Test"
    os.environ["DASHSCOPE_API_KEY"] = "test-key"
    get_settings.cache_clear()
    yield
    # Clean up
    os.environ.pop("ENVIRONMENT", None)
    os.environ.pop("DEBUG", None)
    os.environ.pop("APP_NAME", None)
    os.environ.pop("DASHSCOPE_API_KEY", None)
    get_settings.cache_clear()


@pytest.fixture
def settings(test_env_vars):
    """Get test settings."""
    return get_settings()


@pytest.fixture
def app(settings):
    """Create test app instance."""
    from interview_trainer.interface.api.main import create_app
    return create_app()


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


def sse_body(*payloads) -> bytes:
    """Encode payloads as an event stream; strings are sent verbatim."""
    lines = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
        lines.append(f"data: {data}\n\n")
    return "".join(lines).encode("utf-8")


def chat_delta(content) -> dict:
    return {"choices": [{"delta": {"content": content}}]}


class ByteSource:
    """Async byte iterator that records whether it was closed."""

    def __init__(self, chunks: List[bytes]):
        self._chunks = list(chunks)
        self.closed = 0

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        if not self._chunks:
            raise StopAsyncIteration
        return self._chunks.pop(0)

    async def aclose(self) -> None:
        self.closed += 1
