"""
API Dependencies: FastAPI Dependency Injection Helpers

Thin resolvers from the dependency-injector container to FastAPI's
Depends(). Tests override the container providers, not these functions.
"""

from typing import Optional

from container import container
from execution.media_augmenter import ImageAugmenter
from infrastructure.database import DatabaseManager
from infrastructure.monitoring import MetricsCollector
from infrastructure.redis_client import RedisClient
from knowledge.content_repository import ContentRepository
from orchestration.generation_orchestrator import GenerationOrchestrator
from orchestration.usage_gate import UsageGate


def get_orchestrator() -> GenerationOrchestrator:
    return container.orchestrator()


def get_usage_gate() -> UsageGate:
    return container.usage_gate()


def get_metrics() -> MetricsCollector:
    return container.metrics()


def get_database() -> Optional[DatabaseManager]:
    return container.database()


def get_redis() -> Optional[RedisClient]:
    return container.redis()


def get_content_repository() -> ContentRepository:
    return container.content_repository()


def get_image_augmenter() -> ImageAugmenter:
    return container.image_augmenter()
