"""
Generation Orchestrator
=======================
Coordinating entry point of the generation pipeline.

State machine:

    RECEIVED → DENIED                                   (admission refused)
    RECEIVED → ADMITTED → PROMPTED → PROVIDER_CALLED → NORMALIZED
             → MEDIA_ATTACHED? → PERSISTED → RETURNED
    any failure after ADMITTED → FALLBACK_RETURNED       (via persistence)

Guarantees:
- Admission strictly precedes every provider, media or persistence call
- Prompt, provider and validation failures yield fallback content, never
  an exception
- Media failures drop the media field only
- Persistence happens once per admitted request and never changes the
  response
- Admitted work runs in its own task behind asyncio.shield, so a caller
  disconnect does not abort provider calls mid-flight
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Set
from uuid import uuid4

from loguru import logger

from core.enums import (
    ContentType,
    MediaKind,
    ModelProvider,
    OrchestrationState,
    Platform,
    SubscriptionTier,
)
from core.exceptions import (
    AdmissionDeniedError,
    MediaError,
    PersistenceError,
    ProviderError,
    ProviderNotConfiguredError,
    ValidationError,
)
from core.models import (
    AdvancedOptions,
    CallerIdentity,
    ContentVariation,
    Deny,
    FallbackContext,
    GenerationRequest,
    GenerationResult,
    MainContent,
    MediaOutcome,
    PersistedContent,
    ResolvedConstraints,
    VideoAttachment,
)
from execution.constraint_resolver import resolve_constraints
from execution.media_augmenter import ImageAugmenter, VideoAugmenter
from execution.prompt_builder import PromptBuilder
from execution.response_normalizer import Malformed, ResponseNormalizer
from infrastructure.llm_client import ProviderAdapter
from infrastructure.monitoring import MetricsCollector
from knowledge.content_repository import ContentRepository
from orchestration.usage_gate import UsageGate


@dataclass
class OrchestrationRun:
    """Bookkeeping for one orchestration."""

    run_id: str = field(default_factory=lambda: uuid4().hex[:12])
    state: OrchestrationState = OrchestrationState.RECEIVED
    history: List[OrchestrationState] = field(default_factory=list)

    def __post_init__(self):
        self.history.append(self.state)

    def advance(self, state: OrchestrationState) -> None:
        logger.debug(f"Orchestration transition | run={self.run_id} | {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)


class GenerationOrchestrator:
    """
    Sequences usage gate → constraints → prompt → provider → normalizer
    → media → persistence.

    Collaborators are injected by the container; adapters are keyed by
    provider and live for the whole process.
    """

    def __init__(
        self,
        usage_gate: UsageGate,
        adapters: Mapping[ModelProvider, ProviderAdapter],
        prompt_builder: PromptBuilder,
        normalizer: ResponseNormalizer,
        content_repository: ContentRepository,
        *,
        image_augmenter: Optional[ImageAugmenter] = None,
        video_augmenter: Optional[VideoAugmenter] = None,
        metrics: Optional[MetricsCollector] = None,
        media_timeout: float = 90.0,
        variations_max_output_tokens: Optional[int] = None,
        charge_more_variations: bool = False,
    ):
        self.usage_gate = usage_gate
        self.adapters = dict(adapters)
        self.prompt_builder = prompt_builder
        self.normalizer = normalizer
        self.content_repository = content_repository
        self.image_augmenter = image_augmenter
        self.video_augmenter = video_augmenter
        self.metrics = metrics
        self.media_timeout = media_timeout
        self.variations_max_output_tokens = variations_max_output_tokens
        self.charge_more_variations = charge_more_variations

        self._inflight: Set[asyncio.Task] = set()
        self.last_run: Optional[OrchestrationRun] = None

        logger.info(
            f"GenerationOrchestrator initialized | providers={[p.value for p in self.adapters]} | "
            f"image={image_augmenter is not None} | video={video_augmenter is not None}"
        )

    # =========================================================================
    # PUBLIC OPERATIONS
    # =========================================================================

    async def generate(self, request: GenerationRequest, caller: CallerIdentity) -> GenerationResult:
        """
        Run one generation for a caller.

        Returns:
            Provider-backed or fallback GenerationResult; never empty

        Raises:
            AdmissionDeniedError: Caller is over quota; nothing was consumed
            UsageStoreError: The usage store could not decide admission
        """
        run = OrchestrationRun()
        self.last_run = run

        decision = await self.usage_gate.admit(caller)
        if isinstance(decision, Deny):
            run.advance(OrchestrationState.DENIED)
            raise AdmissionDeniedError(decision.to_response())

        run.advance(OrchestrationState.ADMITTED)
        return await self._shielded(self._run_admitted(run, request, caller, decision.tier))

    async def generate_more_variations(
        self,
        platform: Platform,
        content_type: ContentType,
        base_content: MainContent,
        options: Optional[AdvancedOptions] = None,
        caller: Optional[CallerIdentity] = None,
    ) -> List[ContentVariation]:
        """
        Additional variations of already generated content.

        Does not consume quota unless configured to; the caller's tier
        still selects the model. Always returns a non-empty list.

        Raises:
            ValidationError: base_content carries no text to vary
            AdmissionDeniedError: Charging is on and the caller is over quota
        """
        if not base_content.content.strip():
            raise ValidationError("Base content must not be empty", field="baseContent.content")

        options = options or AdvancedOptions()
        tier = SubscriptionTier.FREE

        if caller is not None:
            if self.charge_more_variations:
                decision = await self.usage_gate.admit(caller)
                if isinstance(decision, Deny):
                    raise AdmissionDeniedError(decision.to_response())
                tier = decision.tier
            else:
                tier = await self.usage_gate.tier_of(caller)

        return await self._shielded(
            self._run_variations(platform, content_type, base_content, options, tier)
        )

    async def drain(self) -> None:
        """Wait for in-flight admitted work. Used at shutdown."""
        if self._inflight:
            logger.info(f"Draining in-flight generations | count={len(self._inflight)}")
            await asyncio.gather(*self._inflight, return_exceptions=True)

    # =========================================================================
    # PIPELINE
    # =========================================================================

    async def _shielded(self, coro: Awaitable[Any]) -> Any:
        task = asyncio.ensure_future(coro)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    def _adapter(self, provider: ModelProvider) -> ProviderAdapter:
        adapter = self.adapters.get(provider)
        if adapter is None:
            raise ProviderNotConfiguredError(
                f"No adapter registered for {provider.value}", provider=provider.value
            )
        return adapter

    async def _run_admitted(
        self,
        run: OrchestrationRun,
        request: GenerationRequest,
        caller: CallerIdentity,
        tier: SubscriptionTier,
    ) -> GenerationResult:
        start = time.perf_counter()
        constraints = resolve_constraints(request.platform, request.options)
        context = FallbackContext(
            topic=request.topic,
            platform=request.platform,
            content_type=request.content_type,
            constraints=constraints,
        )
        provider = ModelProvider.from_language_model(request.options.language_model)

        result = await self._generate_text(run, request, constraints, context, provider, tier)

        if not result.is_fallback:
            result = await self._attach_media(run, result, request, constraints)

        content_id = await self._persist(result, request, caller)
        if content_id is not None:
            result = result.model_copy(update={"content_id": content_id})
            run.advance(OrchestrationState.PERSISTED)

        run.advance(
            OrchestrationState.FALLBACK_RETURNED
            if result.is_fallback
            else OrchestrationState.RETURNED
        )
        if self.metrics:
            self.metrics.record_generation(
                provider.value, result.source.value, time.perf_counter() - start
            )
        logger.success(
            f"Generation complete | run={run.run_id} | provider={provider.value} | "
            f"source={result.source.value} | variations={len(result.variations)} | "
            f"content_id={result.content_id}"
        )
        return result

    async def _generate_text(
        self,
        run: OrchestrationRun,
        request: GenerationRequest,
        constraints: ResolvedConstraints,
        context: FallbackContext,
        provider: ModelProvider,
        tier: SubscriptionTier,
    ) -> GenerationResult:
        try:
            payload = self.prompt_builder.build(request, constraints, provider)
            run.advance(OrchestrationState.PROMPTED)

            raw = await self._adapter(provider).generate(
                payload, request.options.creativity, tier
            )
            run.advance(OrchestrationState.PROVIDER_CALLED)

            outcome = self.normalizer.parse(raw)
            if isinstance(outcome, Malformed):
                logger.warning(
                    f"Provider output malformed, using fallback | run={run.run_id} | "
                    f"provider={provider.value} | reason={outcome.reason}"
                )
                return self.normalizer.synthesizer.synthesize(context)

            result = self.normalizer.from_outcome(outcome, context)
            run.advance(OrchestrationState.NORMALIZED)
            return result

        except ProviderError as e:
            logger.warning(
                f"Provider call failed, using fallback | run={run.run_id} | "
                f"provider={provider.value} | error_code={e.error_code} | error={e.message}"
            )
        except Exception as e:
            logger.exception(
                f"Unexpected generation failure, using fallback | run={run.run_id} | error={e}"
            )
        return self.normalizer.synthesizer.synthesize(context)

    async def _attach_media(
        self,
        run: OrchestrationRun,
        result: GenerationResult,
        request: GenerationRequest,
        constraints: ResolvedConstraints,
    ) -> GenerationResult:
        text = result.main_content.content
        jobs: Dict[MediaKind, Awaitable[Any]] = {}
        if request.content_type.wants_image and self.image_augmenter is not None:
            jobs[MediaKind.IMAGE] = self.image_augmenter.augment(
                text, request.platform, constraints.style
            )
        if request.content_type.wants_video and self.video_augmenter is not None:
            jobs[MediaKind.VIDEO] = self.video_augmenter.augment(text, request.platform)
        if not jobs:
            return result

        outcomes = await asyncio.gather(
            *(self._best_effort_media(run, kind, job) for kind, job in jobs.items())
        )

        update: Dict[str, Any] = {}
        for outcome in outcomes:
            if not outcome.succeeded:
                continue
            if outcome.kind is MediaKind.IMAGE:
                update["image_url"] = outcome.url
            elif outcome.video is not None:
                update.update(
                    video_url=outcome.video.url,
                    video_concept=outcome.video.concept,
                    video_concept_only=outcome.video.concept_only,
                )

        if not update:
            return result
        run.advance(OrchestrationState.MEDIA_ATTACHED)
        return result.model_copy(
            update={"main_content": result.main_content.model_copy(update=update)}
        )

    async def _best_effort_media(
        self, run: OrchestrationRun, kind: MediaKind, job: Awaitable[Any]
    ) -> MediaOutcome:
        try:
            value = await asyncio.wait_for(job, timeout=self.media_timeout)
        except asyncio.TimeoutError:
            outcome = MediaOutcome(kind=kind, error=f"timed out after {self.media_timeout}s")
        except MediaError as e:
            outcome = MediaOutcome(kind=kind, error=e.message)
        except Exception as e:
            logger.exception(f"Unexpected media failure | run={run.run_id} | kind={kind.value}")
            outcome = MediaOutcome(kind=kind, error=str(e))
        else:
            if isinstance(value, VideoAttachment):
                outcome = MediaOutcome(kind=kind, video=value)
            else:
                outcome = MediaOutcome(kind=kind, url=value)

        if outcome.error is not None:
            logger.warning(
                f"Media skipped | run={run.run_id} | kind={kind.value} | error={outcome.error}"
            )
        if self.metrics:
            self.metrics.record_media(kind.value, outcome.succeeded)
        return outcome

    async def _persist(
        self,
        result: GenerationResult,
        request: GenerationRequest,
        caller: CallerIdentity,
    ) -> Optional[str]:
        record = PersistedContent.from_result(result, request, caller)
        try:
            return await self.content_repository.create_content(record)
        except PersistenceError as e:
            logger.error(f"Content persistence failed | content_id={record.id} | error={e.message}")
        except Exception as e:
            logger.exception(f"Unexpected persistence failure | content_id={record.id} | error={e}")
        if self.metrics:
            self.metrics.record_persistence_failure()
        return None

    async def _run_variations(
        self,
        platform: Platform,
        content_type: ContentType,
        base_content: MainContent,
        options: AdvancedOptions,
        tier: SubscriptionTier,
    ) -> List[ContentVariation]:
        constraints = resolve_constraints(platform, options)
        provider = ModelProvider.from_language_model(options.language_model)

        raw: Optional[str] = None
        try:
            payload = self.prompt_builder.build_variations(
                platform, content_type, base_content, constraints, provider
            )
            raw = await self._adapter(provider).generate(
                payload,
                options.creativity,
                tier,
                max_output_tokens=self.variations_max_output_tokens,
            )
        except ProviderError as e:
            logger.warning(
                f"Variation generation failed, using fallback | provider={provider.value} | "
                f"error_code={e.error_code} | error={e.message}"
            )
        except Exception as e:
            logger.exception(f"Unexpected variation failure, using fallback | error={e}")

        variations = self.normalizer.normalize_variations(raw, base_content.title, constraints)
        logger.info(
            f"Variations generated | provider={provider.value} | tier={tier.value} | "
            f"count={len(variations)}"
        )
        return variations
