"""
Pytest configuration and shared fixtures for the BGE AI gateway test suite.
"""

import asyncio
from typing import List, Optional

import pytest

from bge_ai.llm.local_responder import LocalAdapter
from bge_ai.llm.models import AIRequest, ProviderId, ProviderResult
from bge_ai.llm.provider_router import ProviderRouter
from bge_ai.utils.config import Config
from bge_ai.utils.errors import ProviderError


class FakeAdapter:
    """
    Scriptable provider adapter.

    ``fail`` makes every invoke raise; ``delay`` makes invoke sleep first
    (used for timeouts and concurrency).
    """

    def __init__(
        self,
        provider_id: ProviderId,
        text: str = "respuesta",
        tokens: int = 10,
        model: Optional[str] = None,
        confidence: float = 0.9,
        fail: Optional[BaseException] = None,
        delay: float = 0.0,
        configured: bool = True,
        probe_error: Optional[BaseException] = None,
    ):
        self.provider_id = provider_id
        self.text = text
        self.tokens = tokens
        self.model = model or f"{provider_id.value}-model"
        self.confidence = confidence
        self.fail = fail
        self.delay = delay
        self.configured = configured
        self.probe_error = probe_error
        self.calls: List[AIRequest] = []
        self.probes = 0
        self.closed = False

    async def invoke(self, request: AIRequest) -> ProviderResult:
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail
        return ProviderResult(
            text=self.text,
            tokens_used=self.tokens,
            model_name=self.model,
            confidence=self.confidence,
        )

    async def probe(self) -> None:
        self.probes += 1
        if self.probe_error is not None:
            raise self.probe_error

    async def close(self) -> None:
        self.closed = True


def provider_failure(provider_id: ProviderId, reason: str = "HTTP 500") -> ProviderError:
    return ProviderError(provider_id.value, reason, status_code=500)


@pytest.fixture
def primary():
    return FakeAdapter(ProviderId.PRIMARY, text="respuesta primaria", tokens=42)


@pytest.fixture
def secondary():
    return FakeAdapter(ProviderId.SECONDARY, text="respuesta secundaria", tokens=30)


@pytest.fixture
def local():
    return LocalAdapter()


@pytest.fixture
def make_router(primary, secondary, local):
    """Factory building a router over the fake adapters."""
    def _make(**kwargs) -> ProviderRouter:
        adapters = kwargs.pop("adapters", [primary, secondary, local])
        kwargs.setdefault("request_timeout", 1.0)
        kwargs.setdefault("probe_timeout", 1.0)
        return ProviderRouter(adapters, **kwargs)
    return _make


@pytest.fixture
def test_config(monkeypatch):
    """Configuration isolated from the developer's environment."""
    for name in (
        "OPENAI_API_KEY", "ANTHROPIC_API_KEY", "CLAUDE_API_KEY", "SECRET_KEY",
        "AI_REQUEST_TIMEOUT", "AI_FAILURE_THRESHOLD", "AI_MAX_MESSAGE_LENGTH",
    ):
        monkeypatch.delenv(name, raising=False)

    config = Config()
    config.logging.configure = False
    config.router.probe_on_startup = False
    config.api.rate_limit_enabled = False
    config.auth.secret_key = "test-secret-key"
    return config
