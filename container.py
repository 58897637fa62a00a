"""
Dependency Injection Container: Centralized Object Lifecycle Management

Composition root of the generation pipeline using dependency-injector.
Every provider adapter, media client and store is constructed here once
and injected; nothing downstream reaches for a module-level client.

Backends are chosen by configuration:
- REDIS_URL set → Redis usage store, otherwise in-memory
- DATABASE_URL set → SQL content store, otherwise in-memory

Architecture: Container Pattern + Dependency Injection + Singleton Registry
"""

from typing import Dict, Optional

from dependency_injector import containers, providers
from loguru import logger

from config.settings import Settings, get_settings
from core.enums import MediaKind, ModelProvider
from execution.media_augmenter import ImageAugmenter, VideoAugmenter
from execution.prompt_builder import PromptBuilder
from execution.response_normalizer import FallbackSynthesizer, ResponseNormalizer
from infrastructure.database import DatabaseManager
from infrastructure.llm_client import ProviderAdapter, build_provider_adapters
from infrastructure.media_client import build_media_clients
from infrastructure.monitoring import MetricsCollector
from infrastructure.redis_client import RedisClient
from knowledge.content_repository import (
    ContentRepository,
    InMemoryContentRepository,
    SqlContentRepository,
)
from knowledge.usage_repository import (
    InMemoryUsageRepository,
    RedisUsageRepository,
    UsageRepository,
)
from optimization.model_router import ModelRouter
from orchestration.generation_orchestrator import GenerationOrchestrator
from orchestration.usage_gate import UsageGate

# =============================================================================
# FACTORIES
# =============================================================================


def _redis_client(settings: Settings) -> Optional[RedisClient]:
    return RedisClient(settings.redis) if settings.redis.enabled else None


def _database_manager(settings: Settings) -> Optional[DatabaseManager]:
    return DatabaseManager(settings.database) if settings.database.enabled else None


def _usage_repository(settings: Settings, redis: Optional[RedisClient]) -> UsageRepository:
    if redis is None:
        logger.warning("REDIS_URL not set - usage counters are process-local")
        return InMemoryUsageRepository(reset_period_days=settings.usage.reset_period_days)
    return RedisUsageRepository(
        redis.client,
        key_prefix=settings.redis.key_prefix,
        reset_period_days=settings.usage.reset_period_days,
        guest_ttl=settings.redis.guest_session_ttl,
        max_attempts=settings.redis.max_transaction_attempts,
    )


def _content_repository(
    settings: Settings, database: Optional[DatabaseManager]
) -> ContentRepository:
    if database is None:
        logger.warning("DATABASE_URL not set - generated content is kept in memory")
        return InMemoryContentRepository()
    return SqlContentRepository(database, write_timeout=settings.database.write_timeout)


def _media_clients(settings: Settings) -> Dict[MediaKind, object]:
    openai_key = settings.llm.openai_api_key
    return build_media_clients(
        settings.media, openai_key.get_secret_value() if openai_key else None
    )


# =============================================================================
# CONTAINER
# =============================================================================


class Container(containers.DeclarativeContainer):
    """
    Central dependency injection container.

    Dependency Graph (DAG):
    Settings -> Infrastructure -> Knowledge -> Optimization -> Execution -> Orchestration
    """

    # Configuration providers (singletons)
    config: providers.Singleton[Settings] = providers.Singleton(get_settings)

    # Infrastructure layer providers (singletons)
    metrics: providers.Singleton[MetricsCollector] = providers.Singleton(MetricsCollector)

    redis = providers.Singleton(_redis_client, settings=config)

    database = providers.Singleton(_database_manager, settings=config)

    # Knowledge layer providers (singletons, one store per process)
    usage_repository: providers.Singleton[UsageRepository] = providers.Singleton(
        _usage_repository, settings=config, redis=redis
    )

    content_repository: providers.Singleton[ContentRepository] = providers.Singleton(
        _content_repository, settings=config, database=database
    )

    # Optimization layer providers
    model_router: providers.Singleton[ModelRouter] = providers.Singleton(
        ModelRouter,
        overrides=config.provided.llm.model_overrides.call(),
    )

    # Provider adapters live for the whole process
    provider_adapters: providers.Singleton[Dict[ModelProvider, ProviderAdapter]] = (
        providers.Singleton(
            build_provider_adapters,
            llm_settings=config.provided.llm,
            router=model_router,
            metrics=metrics,
        )
    )

    media_clients = providers.Singleton(_media_clients, settings=config)

    # Execution layer providers
    prompt_builder: providers.Singleton[PromptBuilder] = providers.Singleton(PromptBuilder)

    normalizer: providers.Singleton[ResponseNormalizer] = providers.Singleton(
        ResponseNormalizer,
        synthesizer=providers.Singleton(FallbackSynthesizer),
    )

    image_augmenter: providers.Singleton[ImageAugmenter] = providers.Singleton(
        ImageAugmenter,
        client=media_clients.provided[MediaKind.IMAGE],
    )

    video_augmenter: providers.Singleton[VideoAugmenter] = providers.Singleton(
        VideoAugmenter,
        client=media_clients.provided[MediaKind.VIDEO],
        placeholder_url=config.provided.media.video_placeholder_url,
    )

    # Orchestration layer providers
    usage_gate: providers.Singleton[UsageGate] = providers.Singleton(
        UsageGate,
        repository=usage_repository,
        guest_limit=config.provided.usage.guest_limit,
        free_limit=config.provided.usage.free_limit,
        metrics=metrics,
    )

    orchestrator: providers.Singleton[GenerationOrchestrator] = providers.Singleton(
        GenerationOrchestrator,
        usage_gate=usage_gate,
        adapters=provider_adapters,
        prompt_builder=prompt_builder,
        normalizer=normalizer,
        content_repository=content_repository,
        image_augmenter=image_augmenter,
        video_augmenter=video_augmenter,
        metrics=metrics,
        media_timeout=config.provided.media.timeout,
        variations_max_output_tokens=config.provided.llm.variations_max_output_tokens,
        charge_more_variations=config.provided.usage.charge_more_variations,
    )


# Global container instance
container = Container()


class ContainerManager:
    """
    Async lifecycle of the container's infrastructure.

    initialize() connects Redis and the database when they are configured;
    cleanup() drains in-flight generations and releases every client.
    """

    def __init__(self, target: Optional[Container] = None) -> None:
        self.container = target or container
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        if self._initialized:
            logger.warning("Container already initialized - skipping re-initialization")
            return

        logger.info("Initializing dependency injection container")

        redis = self.container.redis()
        if redis is not None:
            await redis.initialize()
            logger.info("✓ Redis initialized successfully")

        database = self.container.database()
        if database is not None:
            await database.initialize()
            logger.info("✓ Database initialized successfully")

        # Build the object graph eagerly so misconfiguration fails at startup
        self.container.orchestrator()
        self._initialized = True
        logger.info("✓ All container components initialized successfully")

    async def cleanup(self) -> None:
        """
        Release container resources.

        Idempotent. Errors while closing one component are logged and do not
        stop the others from being closed.
        """
        if not self._initialized:
            logger.debug("Container not initialized - skipping cleanup")
            return

        logger.info("Cleaning up dependency injection container")
        await self.container.orchestrator().drain()

        closers = []
        for adapter in self.container.provider_adapters().values():
            closers.append((f"adapter:{adapter.provider.value}", adapter.aclose))
        for kind, client in self.container.media_clients().items():
            closers.append((f"media:{kind.value}", client.aclose))

        redis = self.container.redis()
        if redis is not None:
            closers.append(("redis", redis.close))
        database = self.container.database()
        if database is not None:
            closers.append(("database", database.close))

        cleanup_errors = []
        for name, close in closers:
            try:
                await close()
            except Exception as e:
                logger.error(f"Cleanup failed | component={name} | error={e}")
                cleanup_errors.append(name)

        if cleanup_errors:
            logger.warning(
                f"Container cleanup completed with {len(cleanup_errors)} error(s): "
                f"{', '.join(cleanup_errors)}"
            )
        else:
            logger.info("✓ Container cleanup completed successfully")

        self._initialized = False


# Global container manager instance
container_manager = ContainerManager()


__all__ = [
    "Container",
    "container",
    "ContainerManager",
    "container_manager",
]
