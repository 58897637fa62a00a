"""
LLM Provider Adapters: uniform generate() over OpenAI and Anthropic.

Each adapter:
- Picks its model through the shared ModelRouter from the caller's tier
- Sends the prompt with temperature taken from the caller's creativity
- Requests JSON output where the provider supports it
- Enforces an explicit timeout on every call
- Translates SDK failures into the ProviderError family

Adapters return raw provider text. Parsing and schema checks belong to
execution.response_normalizer; a call is attempted once, never retried.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

import anthropic
import httpx
import openai
from anthropic import AsyncAnthropic
from loguru import logger
from openai import AsyncOpenAI

from config.settings import LLMSettings
from core.enums import ModelProvider, SubscriptionTier
from core.exceptions import (
    ProviderAuthenticationError,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)
from core.models import PromptPayload
from infrastructure.monitoring import MetricsCollector
from optimization.model_router import ModelRouter

# ============================================================================
# CIRCUIT BREAKER: Fault Isolation Pattern
# ============================================================================


class CircuitState(str, Enum):
    """Circuit breaker states implementing finite state machine."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failure threshold exceeded
    HALF_OPEN = "half_open"  # Testing recovery


class CircuitBreaker:
    """
    Per-process circuit breaker around one provider.

    State Transitions:
    CLOSED → OPEN: After failure_threshold consecutive failures
    OPEN → HALF_OPEN: After recovery_timeout duration
    HALF_OPEN → CLOSED: On the first success
    HALF_OPEN → OPEN: On any failure

    While OPEN, calls fail immediately with ProviderError so the
    orchestrator falls back without waiting on a dead upstream.
    """

    def __init__(self, name: str, failure_threshold: int = 5, recovery_timeout: float = 60.0):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at: Optional[datetime] = None

    async def call(self, func, *args, **kwargs):
        if self.state == CircuitState.OPEN:
            elapsed = (datetime.utcnow() - self.opened_at).total_seconds()
            if elapsed < self.recovery_timeout:
                raise ProviderError(
                    f"Circuit breaker is OPEN for {self.name}",
                    provider=self.name,
                    error_code="PROVIDER_CIRCUIT_OPEN",
                )
            logger.info(f"Circuit breaker transitioning to HALF_OPEN | provider={self.name}")
            self.state = CircuitState.HALF_OPEN

        try:
            result = await func(*args, **kwargs)
        except ProviderError:
            self._record_failure()
            raise

        if self.state == CircuitState.HALF_OPEN:
            logger.info(f"Circuit breaker transitioning to CLOSED | provider={self.name}")
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        return result

    def _record_failure(self) -> None:
        self.failure_count += 1
        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                logger.error(
                    f"Circuit breaker transitioning to OPEN | provider={self.name} | "
                    f"failures={self.failure_count}"
                )
            self.state = CircuitState.OPEN
            self.opened_at = datetime.utcnow()


# ============================================================================
# ADAPTER CONTRACT
# ============================================================================


class ProviderAdapter(ABC):
    """Uniform generate() contract over one LLM backend."""

    provider: ModelProvider

    def __init__(
        self,
        router: ModelRouter,
        *,
        timeout: float = 45.0,
        max_output_tokens: int = 1024,
        metrics: Optional[MetricsCollector] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.router = router
        self.timeout = timeout
        self.max_output_tokens = max_output_tokens
        self.metrics = metrics
        self.breaker = breaker or CircuitBreaker(self.provider.value)

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether credentials for this provider are present."""

    @abstractmethod
    async def _complete(
        self,
        payload: PromptPayload,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        """Single SDK call returning raw text."""

    @abstractmethod
    def _translate_error(self, error: Exception, model: str) -> ProviderError:
        """Map an SDK exception onto the ProviderError family."""

    async def generate(
        self,
        payload: PromptPayload,
        creativity: float,
        tier: SubscriptionTier,
        *,
        max_output_tokens: Optional[int] = None,
    ) -> str:
        """
        Send one prompt and return the raw provider text.

        Args:
            payload: Prompt built for this provider family
            creativity: Caller creativity in [0, 1], used as temperature
            tier: Caller tier; selects the model through the router
            max_output_tokens: Override of the configured output budget

        Raises:
            ProviderError: On missing credentials, network, auth, rate
                limit or timeout failures
        """
        model = self.router.select_model(self.provider, tier)
        if not self.is_configured:
            raise ProviderNotConfiguredError(provider=self.provider.value, model=model)

        temperature = min(max(creativity, 0.0), 1.0)
        max_tokens = max_output_tokens or self.max_output_tokens

        start = time.perf_counter()
        status = "error"
        try:
            text = await self.breaker.call(
                self._complete_with_timeout, payload, model, temperature, max_tokens
            )
            status = "success"
            logger.info(
                f"Provider call succeeded | provider={self.provider.value} | model={model} | "
                f"tier={tier.value} | latency_ms={(time.perf_counter() - start) * 1000:.0f}"
            )
            return text
        except ProviderTimeoutError:
            status = "timeout"
            raise
        except ProviderRateLimitError:
            status = "rate_limited"
            raise
        finally:
            if self.metrics:
                self.metrics.record_llm_api_call(
                    model=model,
                    provider=self.provider.value,
                    status=status,
                    latency_seconds=time.perf_counter() - start,
                )

    async def _complete_with_timeout(
        self,
        payload: PromptPayload,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        try:
            return await asyncio.wait_for(
                self._complete(payload, model, temperature, max_tokens),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(
                provider=self.provider.value,
                model=model,
                timeout_seconds=self.timeout,
                cause=e,
            ) from e
        except ProviderError:
            raise
        except Exception as e:
            raise self._translate_error(e, model) from e

    async def aclose(self) -> None:
        """Release the underlying HTTP client."""


# ============================================================================
# OPENAI
# ============================================================================


class OpenAIAdapter(ProviderAdapter):
    """GPT-family adapter using JSON mode chat completions."""

    provider = ModelProvider.OPENAI

    def __init__(
        self,
        router: ModelRouter,
        *,
        api_key: Optional[str] = None,
        organization: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
        **kwargs,
    ):
        super().__init__(router, **kwargs)
        if client is None and api_key:
            client = AsyncOpenAI(
                api_key=api_key,
                organization=organization,
                timeout=httpx.Timeout(self.timeout),
                max_retries=0,  # Single attempt, the orchestrator falls back
            )
        self.client = client

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    async def _complete(
        self,
        payload: PromptPayload,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        messages = []
        if payload.system:
            messages.append({"role": "system", "content": payload.system})
        messages.append({"role": "user", "content": payload.user})

        params: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if payload.expects_json:
            params["response_format"] = {"type": "json_object"}

        response = await self.client.chat.completions.create(**params)
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    def _translate_error(self, error: Exception, model: str) -> ProviderError:
        context = {"provider": self.provider.value, "model": model, "cause": error}
        if isinstance(error, openai.APITimeoutError):
            return ProviderTimeoutError(str(error), timeout_seconds=self.timeout, **context)
        if isinstance(error, openai.RateLimitError):
            return ProviderRateLimitError(str(error), **context)
        if isinstance(error, openai.AuthenticationError):
            return ProviderAuthenticationError(str(error), **context)
        return ProviderError(f"OpenAI request failed: {error}", **context)

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.close()


# ============================================================================
# ANTHROPIC
# ============================================================================


class ClaudeAdapter(ProviderAdapter):
    """Claude-family adapter using the Messages API."""

    provider = ModelProvider.ANTHROPIC

    def __init__(
        self,
        router: ModelRouter,
        *,
        api_key: Optional[str] = None,
        client: Optional[AsyncAnthropic] = None,
        **kwargs,
    ):
        super().__init__(router, **kwargs)
        if client is None and api_key:
            client = AsyncAnthropic(
                api_key=api_key,
                timeout=httpx.Timeout(self.timeout),
                max_retries=0,
            )
        self.client = client

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    async def _complete(
        self,
        payload: PromptPayload,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        params: Dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": payload.user}],
        }
        if payload.system:
            params["system"] = payload.system

        response = await self.client.messages.create(**params)
        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )

    def _translate_error(self, error: Exception, model: str) -> ProviderError:
        context = {"provider": self.provider.value, "model": model, "cause": error}
        if isinstance(error, anthropic.APITimeoutError):
            return ProviderTimeoutError(str(error), timeout_seconds=self.timeout, **context)
        if isinstance(error, anthropic.RateLimitError):
            return ProviderRateLimitError(str(error), **context)
        if isinstance(error, anthropic.AuthenticationError):
            return ProviderAuthenticationError(str(error), **context)
        return ProviderError(f"Anthropic request failed: {error}", **context)

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.close()


# ============================================================================
# FACTORY
# ============================================================================


def build_provider_adapters(
    llm_settings: LLMSettings,
    router: ModelRouter,
    metrics: Optional[MetricsCollector] = None,
) -> Dict[ModelProvider, ProviderAdapter]:
    """One adapter per provider, owned by the composition root."""
    openai_key = llm_settings.openai_api_key
    anthropic_key = llm_settings.anthropic_api_key

    adapters: Dict[ModelProvider, ProviderAdapter] = {
        ModelProvider.OPENAI: OpenAIAdapter(
            router,
            api_key=openai_key.get_secret_value() if openai_key else None,
            organization=llm_settings.openai_org_id,
            timeout=llm_settings.request_timeout,
            max_output_tokens=llm_settings.max_output_tokens,
            metrics=metrics,
        ),
        ModelProvider.ANTHROPIC: ClaudeAdapter(
            router,
            api_key=anthropic_key.get_secret_value() if anthropic_key else None,
            timeout=llm_settings.request_timeout,
            max_output_tokens=llm_settings.max_output_tokens,
            metrics=metrics,
        ),
    }

    logger.info(
        "Provider adapters initialized | "
        + " | ".join(f"{p.value}={a.is_configured}" for p, a in adapters.items())
    )
    return adapters
