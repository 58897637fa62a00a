"""
Pytest Configuration and Fixture Library

Shared test infrastructure:
- Environment seeded before any application import
- Isolated Prometheus registries
- In-process usage/content stores and a fakeredis-backed usage store
- Scriptable provider adapters and media augmenters
- A FastAPI TestClient wired to in-memory backends

Design Pattern: Test Data Builder + Fixture Factory
"""

import asyncio
import os
from datetime import datetime, timedelta
from typing import List, Optional, Union
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

# Set test environment variables before importing any modules
os.environ.update(
    {
        "ENVIRONMENT": "development",
        "SECRET_KEY": "test-secret-key-0123456789-abcdefghijklmnop",
        "MONITORING_ENABLE_STRICT_CSP": "true",
    }
)
for _var in (
    "DATABASE_URL",
    "REDIS_URL",
    "LLM_OPENAI_API_KEY",
    "LLM_ANTHROPIC_API_KEY",
    "LLM_GEMINI_API_KEY",
):
    os.environ.pop(_var, None)

from fakeredis import aioredis as fake_aioredis
from prometheus_client import CollectorRegistry

from core.enums import ContentType, MediaKind, ModelProvider, Platform
from core.exceptions import ProviderError
from core.models import (
    AdvancedOptions,
    CallerIdentity,
    GenerationRequest,
    PromptPayload,
    VideoAttachment,
)
from execution.prompt_builder import PromptBuilder
from execution.response_normalizer import ResponseNormalizer
from infrastructure.llm_client import ProviderAdapter
from infrastructure.monitoring import MetricsCollector
from knowledge.content_repository import InMemoryContentRepository
from knowledge.usage_repository import InMemoryUsageRepository, RedisUsageRepository
from optimization.model_router import ModelRouter
from orchestration.generation_orchestrator import GenerationOrchestrator
from orchestration.usage_gate import UsageGate

# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "unit: mark test as unit test (no external dependencies)")


# ============================================================================
# PROVIDER / MEDIA TEST DOUBLES
# ============================================================================

ScriptStep = Union[str, Exception]

VALID_RESPONSE = (
    '{"mainContent": {"title": "Remote Work Wins", "content": "Remote teams ship faster. '
    '#RemoteWork"}, "variations": [{"content": "Work from anywhere, ship everywhere."}, '
    '{"content": "Async beats meetings."}, {"content": "Focus time is a feature."}]}'
)


class ScriptedAdapter(ProviderAdapter):
    """
    Provider adapter whose SDK call replays a script.

    Each step is either raw text to return or an exception to raise;
    the last step repeats. Goes through the real generate() path, so
    routing, timeouts, the circuit breaker and metrics all apply.
    """

    def __init__(
        self,
        provider: ModelProvider,
        script: List[ScriptStep],
        *,
        delay: float = 0.0,
        router: Optional[ModelRouter] = None,
        **kwargs,
    ):
        self.provider = provider
        super().__init__(router or ModelRouter(), **kwargs)
        self.script = list(script)
        self.delay = delay
        self.calls: List[dict] = []

    @property
    def is_configured(self) -> bool:
        return True

    async def _complete(self, payload: PromptPayload, model: str, temperature: float, max_tokens: int) -> str:
        self.calls.append(
            {"payload": payload, "model": model, "temperature": temperature, "max_tokens": max_tokens}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        step = self.script[min(len(self.calls) - 1, len(self.script) - 1)]
        if isinstance(step, Exception):
            raise step
        return step

    def _translate_error(self, error: Exception, model: str) -> ProviderError:
        return ProviderError(str(error), provider=self.provider.value, model=model, cause=error)


class StubImageAugmenter:
    def __init__(self, url: Optional[str] = "https://images.example.com/1.png", error: Optional[Exception] = None):
        self.url = url
        self.error = error
        self.calls = 0

    async def augment(self, text, platform, style=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.url


class StubVideoAugmenter:
    def __init__(self, concept: str = "Open on a sunrise over a laptop.", error: Optional[Exception] = None):
        self.concept = concept
        self.error = error
        self.calls = 0

    async def augment(self, text, platform, style=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return VideoAttachment(url="https://videos.example.com/staging.mp4", concept=self.concept)


# ============================================================================
# CORE FIXTURES
# ============================================================================


@pytest.fixture
def metrics() -> MetricsCollector:
    """Metrics collector on an isolated registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def frozen_clock():
    """Settable clock for usage-period tests."""

    class Clock:
        def __init__(self):
            self.now = datetime(2025, 1, 1, 12, 0, 0)

        def __call__(self) -> datetime:
            return self.now

        def advance(self, **kwargs) -> None:
            self.now += timedelta(**kwargs)

    return Clock()


@pytest.fixture
def usage_repository() -> InMemoryUsageRepository:
    return InMemoryUsageRepository()


@pytest_asyncio.fixture
async def fake_redis():
    client = fake_aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def redis_usage_repository(fake_redis, frozen_clock) -> RedisUsageRepository:
    return RedisUsageRepository(fake_redis, key_prefix="test-usage", clock=frozen_clock)


@pytest.fixture
def content_repository() -> InMemoryContentRepository:
    return InMemoryContentRepository()


@pytest.fixture
def usage_gate(usage_repository, metrics) -> UsageGate:
    return UsageGate(usage_repository, guest_limit=1, free_limit=5, metrics=metrics)


@pytest.fixture
def openai_adapter(metrics) -> ScriptedAdapter:
    return ScriptedAdapter(ModelProvider.OPENAI, [VALID_RESPONSE], metrics=metrics, timeout=1.0)


@pytest.fixture
def claude_adapter(metrics) -> ScriptedAdapter:
    return ScriptedAdapter(ModelProvider.ANTHROPIC, [VALID_RESPONSE], metrics=metrics, timeout=1.0)


@pytest.fixture
def image_augmenter() -> StubImageAugmenter:
    return StubImageAugmenter()


@pytest.fixture
def video_augmenter() -> StubVideoAugmenter:
    return StubVideoAugmenter()


@pytest.fixture
def make_orchestrator(usage_gate, content_repository, metrics, image_augmenter, video_augmenter):
    """Factory building an orchestrator around the given adapters."""

    def _make(*adapters: ProviderAdapter, **kwargs) -> GenerationOrchestrator:
        options = {
            "image_augmenter": image_augmenter,
            "video_augmenter": video_augmenter,
            "metrics": metrics,
            "media_timeout": 1.0,
        }
        options.update(kwargs)
        return GenerationOrchestrator(
            options.pop("usage_gate", usage_gate),
            {adapter.provider: adapter for adapter in adapters},
            PromptBuilder(),
            ResponseNormalizer(),
            options.pop("content_repository", content_repository),
            **options,
        )

    return _make


# ============================================================================
# TEST DATA FACTORIES
# ============================================================================


class RequestFactory:
    """Factory for GenerationRequest instances."""

    @staticmethod
    def create(
        topic: str = "Remote work productivity",
        platform: Platform = Platform.TWITTER,
        content_type: ContentType = ContentType.TEXT_ONLY,
        **options,
    ) -> GenerationRequest:
        return GenerationRequest(
            topic=topic,
            platform=platform,
            content_type=content_type,
            options=AdvancedOptions(**options),
        )


@pytest.fixture
def request_factory():
    return RequestFactory


@pytest.fixture
def free_user() -> CallerIdentity:
    return CallerIdentity.for_user("user-123")


@pytest.fixture
def guest() -> CallerIdentity:
    return CallerIdentity.for_session("session-abc")


# ============================================================================
# API CLIENT FIXTURES
# ============================================================================


@pytest.fixture
def api_container(metrics, openai_adapter, claude_adapter):
    """
    Global container overridden with in-memory stores and scripted adapters.

    Overrides are reset after the test so singletons never leak.
    """
    from dependency_injector import providers

    from container import container

    container.reset_singletons()
    container.metrics.override(providers.Object(metrics))
    container.provider_adapters.override(
        providers.Object(
            {ModelProvider.OPENAI: openai_adapter, ModelProvider.ANTHROPIC: claude_adapter}
        )
    )
    media = {kind: MagicMock(aclose=AsyncMock()) for kind in MediaKind}
    container.media_clients.override(providers.Object(media))
    container.image_augmenter.override(providers.Object(StubImageAugmenter()))
    container.video_augmenter.override(providers.Object(StubVideoAugmenter()))

    yield container

    container.reset_override()
    container.reset_singletons()


@pytest.fixture
def api_client(api_container):
    """FastAPI test client running the real lifespan against in-memory backends."""
    from fastapi.testclient import TestClient

    from api.main import app

    with TestClient(app) as client:
        yield client


@pytest.fixture
def valid_response() -> str:
    """Well-formed provider output with three variations."""
    return VALID_RESPONSE


@pytest.fixture
def scripted_adapter(metrics):
    """Factory for ScriptedAdapter instances sharing the test's metrics."""

    def _make(provider: ModelProvider, script: List[ScriptStep], **kwargs) -> ScriptedAdapter:
        kwargs.setdefault("metrics", metrics)
        kwargs.setdefault("timeout", 1.0)
        return ScriptedAdapter(provider, script, **kwargs)

    return _make
