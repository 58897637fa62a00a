"""
API Schemas: Request/Response Models

Pydantic models for the HTTP contract that are not domain models
themselves. Field names are camelCase on the wire, matching the
domain models in core.models.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from core.enums import ContentStyle, ContentType, Platform
from core.models import AdvancedOptions, ContentVariation, MainContent, PersistedContent


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VariationsRequest(_CamelModel):
    """Command: more variations of content the caller already has."""

    platform: Platform
    content_type: ContentType = ContentType.TEXT_ONLY
    base_content: MainContent
    options: AdvancedOptions = Field(default_factory=AdvancedOptions)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "platform": "linkedin",
                "contentType": "textOnly",
                "baseContent": {
                    "title": "Remote work in 2025",
                    "content": "Remote teams ship faster when...",
                },
                "options": {"creativity": 0.8, "languageModel": "claude"},
            }
        },
    )


class VariationsResponse(_CamelModel):
    """Query result: a non-empty list of variations."""

    variations: List[ContentVariation]


class ContentHistoryResponse(_CamelModel):
    """Query result: the caller's persisted content, newest first."""

    items: List[PersistedContent]
    count: int


class ImageRequest(_CamelModel):
    """Command: one standalone image for a piece of text."""

    prompt: str = Field(..., min_length=1, max_length=2000)
    platform: Platform
    content_style: ContentStyle = ContentStyle.BALANCED


class ImageResponse(_CamelModel):
    image_url: str


class HealthCheckResponse(BaseModel):
    """System health status."""

    status: str
    timestamp: datetime
    version: str
    dependencies: Dict[str, str]


class ErrorResponse(BaseModel):
    """Standardized error response."""

    error: str
    detail: str
    timestamp: datetime
    request_id: Optional[str]
