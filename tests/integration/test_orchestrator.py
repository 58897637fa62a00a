"""
Integration Tests for the Generation Orchestrator
=================================================

Full pipeline against in-memory stores and scripted provider adapters:
admission, prompt, provider, normalizer, media and persistence.
"""

import asyncio

import pytest

from core.enums import (
    ContentType,
    DenialReason,
    LanguageModel,
    MediaKind,
    ModelProvider,
    OrchestrationState,
    Platform,
    ResultSource,
    SubscriptionStatus,
)
from core.exceptions import (
    AdmissionDeniedError,
    MediaError,
    PersistenceError,
    ProviderError,
    ValidationError,
)
from core.models import MainContent

pytestmark = pytest.mark.integration


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_twitter_request_is_capped_at_platform_limit(
        self, make_orchestrator, openai_adapter, request_factory, free_user, content_repository
    ):
        orchestrator = make_orchestrator(openai_adapter)

        result = await orchestrator.generate(
            request_factory.create(platform=Platform.TWITTER, max_length=500), free_user
        )

        payload = openai_adapter.calls[0]["payload"]
        assert payload.max_length == 280
        assert "280" in payload.user
        assert result.source is ResultSource.PROVIDER
        assert result.main_content.title == "Remote Work Wins"
        assert len(result.variations) == 3
        assert result.content_id is not None
        assert len(content_repository) == 1

    @pytest.mark.asyncio
    async def test_state_history(self, make_orchestrator, openai_adapter, request_factory, free_user):
        orchestrator = make_orchestrator(openai_adapter)

        await orchestrator.generate(request_factory.create(), free_user)

        assert orchestrator.last_run.history == [
            OrchestrationState.RECEIVED,
            OrchestrationState.ADMITTED,
            OrchestrationState.PROMPTED,
            OrchestrationState.PROVIDER_CALLED,
            OrchestrationState.NORMALIZED,
            OrchestrationState.PERSISTED,
            OrchestrationState.RETURNED,
        ]
        assert orchestrator.last_run.state.is_terminal

    @pytest.mark.asyncio
    async def test_claude_selected_by_language_model(
        self, make_orchestrator, openai_adapter, claude_adapter, request_factory, free_user
    ):
        orchestrator = make_orchestrator(openai_adapter, claude_adapter)

        await orchestrator.generate(
            request_factory.create(language_model=LanguageModel.CLAUDE), free_user
        )

        assert len(claude_adapter.calls) == 1
        assert openai_adapter.calls == []
        assert claude_adapter.calls[0]["model"] == "claude-haiku-4-5-20251001"

    @pytest.mark.asyncio
    async def test_paid_caller_gets_higher_capability_model(
        self, make_orchestrator, openai_adapter, usage_repository, request_factory, free_user
    ):
        await usage_repository.set_subscription_status(
            free_user.subject_id, SubscriptionStatus.ACTIVE
        )
        orchestrator = make_orchestrator(openai_adapter)

        await orchestrator.generate(request_factory.create(), free_user)

        assert openai_adapter.calls[0]["model"] == "gpt-4o"

    @pytest.mark.asyncio
    async def test_creativity_becomes_temperature(
        self, make_orchestrator, openai_adapter, request_factory, free_user
    ):
        orchestrator = make_orchestrator(openai_adapter)

        await orchestrator.generate(request_factory.create(creativity=0.2), free_user)

        assert openai_adapter.calls[0]["temperature"] == pytest.approx(0.2)


class TestAdmission:
    @pytest.mark.asyncio
    async def test_guest_second_attempt_denied_without_provider_call(
        self, make_orchestrator, openai_adapter, request_factory, guest, content_repository
    ):
        orchestrator = make_orchestrator(openai_adapter)
        await orchestrator.generate(request_factory.create(), guest)

        with pytest.raises(AdmissionDeniedError) as exc_info:
            await orchestrator.generate(request_factory.create(), guest)

        denied = exc_info.value.denied
        assert denied.reason is DenialReason.GUEST_LIMIT_REACHED
        assert denied.requires_signup is True
        assert len(openai_adapter.calls) == 1
        assert len(content_repository) == 1
        assert orchestrator.last_run.history == [
            OrchestrationState.RECEIVED,
            OrchestrationState.DENIED,
        ]

    @pytest.mark.asyncio
    async def test_concurrent_requests_at_last_free_slot(
        self, make_orchestrator, openai_adapter, usage_repository, request_factory, free_user
    ):
        for _ in range(4):
            await usage_repository.increment_usage(free_user.subject_id)
        orchestrator = make_orchestrator(openai_adapter)

        outcomes = await asyncio.gather(
            orchestrator.generate(request_factory.create(), free_user),
            orchestrator.generate(request_factory.create(), free_user),
            return_exceptions=True,
        )

        denied = [o for o in outcomes if isinstance(o, AdmissionDeniedError)]
        served = [o for o in outcomes if not isinstance(o, Exception)]
        assert len(denied) == 1
        assert len(served) == 1
        assert denied[0].denied.reason is DenialReason.FREE_LIMIT_REACHED
        assert denied[0].denied.usage_count == 5
        assert denied[0].denied.usage_limit == 5
        assert len(openai_adapter.calls) == 1


class TestFallback:
    @pytest.mark.asyncio
    async def test_provider_timeout_returns_fallback(
        self, make_orchestrator, scripted_adapter, request_factory, free_user, content_repository, metrics
    ):
        slow = scripted_adapter(ModelProvider.OPENAI, ["{}"], delay=0.5, timeout=0.05)
        orchestrator = make_orchestrator(slow)

        result = await orchestrator.generate(
            request_factory.create(topic="Remote work productivity"), free_user
        )

        assert result.source is ResultSource.FALLBACK
        assert "Remote work productivity" in result.main_content.content
        assert len(result.variations) == 3
        assert result.content_id is not None
        assert len(content_repository) == 1
        assert orchestrator.last_run.state is OrchestrationState.FALLBACK_RETURNED
        assert metrics.sample(
            "llm_api_requests_total",
            {"model": "gpt-4o-mini", "provider": "openai", "status": "timeout"},
        ) == 1.0
        assert metrics.sample(
            "content_generations_total", {"provider": "openai", "source": "fallback"}
        ) == 1.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw",
        [
            "I'm sorry, I can't produce JSON today.",
            '{"variations": []}',
            '{"mainContent": {"title": "", "content": ""}}',
        ],
    )
    async def test_malformed_output_returns_fallback(
        self, make_orchestrator, scripted_adapter, request_factory, free_user, raw
    ):
        orchestrator = make_orchestrator(scripted_adapter(ModelProvider.OPENAI, [raw]))

        result = await orchestrator.generate(request_factory.create(), free_user)

        assert result.source is ResultSource.FALLBACK
        assert result.main_content.content
        assert len(result.variations) == 3

    @pytest.mark.asyncio
    async def test_provider_error_returns_fallback(
        self, make_orchestrator, scripted_adapter, request_factory, free_user
    ):
        failing = scripted_adapter(
            ModelProvider.OPENAI, [ProviderError("upstream 500", provider="openai")]
        )
        orchestrator = make_orchestrator(failing)

        result = await orchestrator.generate(request_factory.create(), free_user)

        assert result.is_fallback
        assert result.main_content.title == "Text post for Twitter"

    @pytest.mark.asyncio
    async def test_missing_adapter_returns_fallback(
        self, make_orchestrator, openai_adapter, request_factory, free_user
    ):
        orchestrator = make_orchestrator(openai_adapter)

        result = await orchestrator.generate(
            request_factory.create(language_model=LanguageModel.CLAUDE), free_user
        )

        assert result.is_fallback
        assert openai_adapter.calls == []

    @pytest.mark.asyncio
    async def test_fallback_skips_media(
        self, make_orchestrator, scripted_adapter, image_augmenter, request_factory, free_user
    ):
        failing = scripted_adapter(ModelProvider.OPENAI, [RuntimeError("boom")])
        orchestrator = make_orchestrator(failing)

        result = await orchestrator.generate(
            request_factory.create(content_type=ContentType.POST_WITH_IMAGE), free_user
        )

        assert result.is_fallback
        assert result.main_content.image_url is None
        assert image_augmenter.calls == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_length", [30, 50])
    async def test_fallback_keeps_topic_under_small_limit(
        self, make_orchestrator, scripted_adapter, request_factory, free_user, max_length
    ):
        orchestrator = make_orchestrator(scripted_adapter(ModelProvider.OPENAI, ["not json"]))

        result = await orchestrator.generate(
            request_factory.create(topic="coffee shop launch", max_length=max_length), free_user
        )

        assert result.is_fallback
        assert "coffee shop launch" in result.main_content.content
        assert len(result.main_content.content) <= max_length
        assert all("coffee shop launch" in v.content for v in result.variations)


class TestProviderOutputIsKept:
    @pytest.mark.asyncio
    async def test_hashtags_in_provider_output_survive_disabled_toggle(
        self, make_orchestrator, scripted_adapter, request_factory, free_user
    ):
        raw = (
            '{"mainContent": {"title": "Launch day", "content": "We are open! #Tag"}, '
            '"variations": [{"content": "Come by #Tag"}]}'
        )
        orchestrator = make_orchestrator(scripted_adapter(ModelProvider.OPENAI, [raw]))

        result = await orchestrator.generate(
            request_factory.create(include_hashtags=False), free_user
        )

        assert result.source is ResultSource.PROVIDER
        assert result.main_content.content == "We are open! #Tag"
        assert result.variations[0].content == "Come by #Tag"


class TestMedia:
    @pytest.mark.asyncio
    async def test_image_attached(
        self, make_orchestrator, openai_adapter, request_factory, free_user, content_repository
    ):
        orchestrator = make_orchestrator(openai_adapter)

        result = await orchestrator.generate(
            request_factory.create(content_type=ContentType.POST_WITH_IMAGE), free_user
        )

        assert result.main_content.image_url == "https://images.example.com/1.png"
        stored = await content_repository.get_content(result.content_id)
        assert stored.image_url == "https://images.example.com/1.png"
        assert OrchestrationState.MEDIA_ATTACHED in orchestrator.last_run.history

    @pytest.mark.asyncio
    async def test_image_failure_drops_only_the_image(
        self, make_orchestrator, openai_adapter, image_augmenter, request_factory, free_user, metrics
    ):
        image_augmenter.error = MediaError("image service down", kind=MediaKind.IMAGE)
        orchestrator = make_orchestrator(openai_adapter)

        result = await orchestrator.generate(
            request_factory.create(content_type=ContentType.POST_WITH_IMAGE), free_user
        )

        assert result.source is ResultSource.PROVIDER
        assert result.main_content.image_url is None
        assert result.main_content.title == "Remote Work Wins"
        assert metrics.sample("media_requests_total", {"kind": "image", "status": "failure"}) == 1.0

    @pytest.mark.asyncio
    async def test_slow_media_times_out(
        self, make_orchestrator, openai_adapter, request_factory, free_user
    ):
        class SlowImages:
            async def augment(self, text, platform, style=None):
                await asyncio.sleep(5)

        orchestrator = make_orchestrator(
            openai_adapter, image_augmenter=SlowImages(), media_timeout=0.05
        )

        result = await orchestrator.generate(
            request_factory.create(content_type=ContentType.POST_WITH_IMAGE), free_user
        )

        assert result.main_content.image_url is None

    @pytest.mark.asyncio
    async def test_video_is_concept_only(
        self, make_orchestrator, openai_adapter, video_augmenter, image_augmenter, request_factory, free_user
    ):
        orchestrator = make_orchestrator(openai_adapter)

        result = await orchestrator.generate(
            request_factory.create(
                platform=Platform.FACEBOOK, content_type=ContentType.POST_WITH_VIDEO
            ),
            free_user,
        )

        main = result.main_content
        assert main.video_url == "https://videos.example.com/staging.mp4"
        assert main.video_concept == "Open on a sunrise over a laptop."
        assert main.video_concept_only is True
        assert video_augmenter.calls == 1
        assert image_augmenter.calls == 0

    @pytest.mark.asyncio
    async def test_text_only_never_calls_media(
        self, make_orchestrator, openai_adapter, image_augmenter, video_augmenter, request_factory, free_user
    ):
        orchestrator = make_orchestrator(openai_adapter)

        await orchestrator.generate(request_factory.create(), free_user)

        assert image_augmenter.calls == 0
        assert video_augmenter.calls == 0


class TestPersistence:
    @pytest.mark.asyncio
    async def test_persistence_failure_does_not_change_response(
        self, make_orchestrator, openai_adapter, request_factory, free_user, metrics
    ):
        class FailingRepository:
            async def create_content(self, content):
                raise PersistenceError("database unavailable")

        orchestrator = make_orchestrator(openai_adapter, content_repository=FailingRepository())

        result = await orchestrator.generate(request_factory.create(), free_user)

        assert result.source is ResultSource.PROVIDER
        assert result.main_content.title == "Remote Work Wins"
        assert result.content_id is None
        assert OrchestrationState.PERSISTED not in orchestrator.last_run.history
        assert metrics.sample("content_persistence_failures_total") == 1.0

    @pytest.mark.asyncio
    async def test_guest_content_has_no_user(
        self, make_orchestrator, openai_adapter, request_factory, guest, content_repository
    ):
        orchestrator = make_orchestrator(openai_adapter)

        result = await orchestrator.generate(request_factory.create(), guest)

        stored = await content_repository.get_content(result.content_id)
        assert stored.user_id is None
        assert stored.platform is Platform.TWITTER


class TestMoreVariations:
    BASE = MainContent(title="Remote Work Wins", content="Remote teams ship faster.")

    @pytest.mark.asyncio
    async def test_does_not_consume_quota(
        self, make_orchestrator, openai_adapter, usage_repository, free_user
    ):
        orchestrator = make_orchestrator(openai_adapter)

        variations = await orchestrator.generate_more_variations(
            Platform.TWITTER, ContentType.TEXT_ONLY, self.BASE, caller=free_user
        )

        assert [v.content for v in variations][0] == "Work from anywhere, ship everywhere."
        assert (await usage_repository.get_usage(free_user.subject_id)).usage_count == 0

    @pytest.mark.asyncio
    async def test_provider_failure_returns_fallback_variations(
        self, make_orchestrator, scripted_adapter, free_user
    ):
        failing = scripted_adapter(ModelProvider.OPENAI, [RuntimeError("boom")])
        orchestrator = make_orchestrator(failing)

        variations = await orchestrator.generate_more_variations(
            Platform.TWITTER, ContentType.TEXT_ONLY, self.BASE, caller=free_user
        )

        assert len(variations) == 3
        assert all("Remote Work Wins" in v.content for v in variations)

    @pytest.mark.asyncio
    async def test_unexpected_prompt_failure_returns_fallback_variations(
        self, make_orchestrator, openai_adapter, free_user, monkeypatch
    ):
        orchestrator = make_orchestrator(openai_adapter)

        def broken(*args, **kwargs):
            raise RuntimeError("template error")

        monkeypatch.setattr(orchestrator.prompt_builder, "build_variations", broken)

        variations = await orchestrator.generate_more_variations(
            Platform.TWITTER, ContentType.TEXT_ONLY, self.BASE, caller=free_user
        )

        assert len(variations) == 3
        assert all("Remote Work Wins" in v.content for v in variations)
        assert openai_adapter.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["", "   \n"])
    async def test_blank_base_content_is_rejected(
        self, make_orchestrator, openai_adapter, free_user, usage_repository, content
    ):
        orchestrator = make_orchestrator(openai_adapter, charge_more_variations=True)

        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.generate_more_variations(
                Platform.TWITTER,
                ContentType.TEXT_ONLY,
                MainContent(title="Remote Work Wins", content=content),
                caller=free_user,
            )

        assert exc_info.value.field == "baseContent.content"
        assert openai_adapter.calls == []
        assert (await usage_repository.get_usage(free_user.subject_id)).usage_count == 0

    @pytest.mark.asyncio
    async def test_charging_mode_denies_exhausted_guest(
        self, make_orchestrator, openai_adapter, guest
    ):
        orchestrator = make_orchestrator(openai_adapter, charge_more_variations=True)
        await orchestrator.generate_more_variations(
            Platform.TWITTER, ContentType.TEXT_ONLY, self.BASE, caller=guest
        )

        with pytest.raises(AdmissionDeniedError):
            await orchestrator.generate_more_variations(
                Platform.TWITTER, ContentType.TEXT_ONLY, self.BASE, caller=guest
            )
        assert len(openai_adapter.calls) == 1

    @pytest.mark.asyncio
    async def test_anonymous_call_without_caller(self, make_orchestrator, openai_adapter):
        orchestrator = make_orchestrator(openai_adapter)

        variations = await orchestrator.generate_more_variations(
            Platform.LINKEDIN, ContentType.TEXT_ONLY, self.BASE
        )

        assert len(variations) == 3
        assert openai_adapter.calls[0]["model"] == "gpt-4o-mini"


class TestDrain:
    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_abort_admitted_work(
        self, make_orchestrator, scripted_adapter, valid_response, request_factory, free_user, content_repository
    ):
        adapter = scripted_adapter(ModelProvider.OPENAI, [valid_response], delay=0.1)
        orchestrator = make_orchestrator(adapter)

        caller_task = asyncio.create_task(orchestrator.generate(request_factory.create(), free_user))
        await asyncio.sleep(0.02)
        caller_task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller_task

        await orchestrator.drain()

        assert len(adapter.calls) == 1
        assert len(content_repository) == 1
        assert orchestrator._inflight == set()
