"""
Domain Data Models
==================
Pydantic v2 schemas for the generation pipeline:
- Request validation (topic, platform, advanced options)
- Composite generation results and denial payloads
- Usage records and persisted content rows
- Immutable value objects passed between pipeline stages

API-facing models serialize with camelCase aliases and accept either
spelling on input.

Architecture: Domain-Driven Design + Value Objects
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from config.constants import GENERATION_SHAPE, MAX_PLATFORM_LIMIT
from core.enums import (
    ContentStyle,
    ContentType,
    DenialReason,
    LanguageModel,
    MediaKind,
    ModelProvider,
    Platform,
    ResultSource,
    SubscriptionStatus,
    SubscriptionTier,
)

GUEST_SUBJECT_PREFIX = "guest:"
USER_SUBJECT_PREFIX = "user:"

# =============================================================================
# CONFIGURATION
# =============================================================================


class BaseModelConfig(BaseModel):
    """Base configuration for all models."""

    model_config = ConfigDict(
        validate_assignment=True,  # Validate on field updates
        use_enum_values=False,  # Keep enum types (don't convert to strings)
        alias_generator=to_camel,
        populate_by_name=True,
    )


# =============================================================================
# REQUEST MODELS
# =============================================================================


class AdvancedOptions(BaseModelConfig):
    """
    Caller-tunable generation options.

    max_length is a request; the platform's hard cap still wins when it is
    smaller (see execution.constraint_resolver).
    """

    creativity: float = Field(default=0.7, ge=0.0, le=1.0)
    max_length: int = Field(
        default=280, ge=GENERATION_SHAPE.MIN_MAX_LENGTH, le=MAX_PLATFORM_LIMIT
    )
    include_emojis: bool = True
    include_cta: bool = Field(default=True, alias="includeCTA")
    include_hashtags: bool = True
    custom_hashtags: list[str] = Field(default_factory=list)
    avoid_words: list[str] = Field(default_factory=list)
    content_style: ContentStyle = ContentStyle.BALANCED
    language_model: LanguageModel = LanguageModel.OPENAI

    @field_validator("custom_hashtags", "avoid_words", mode="before")
    @classmethod
    def split_and_strip(cls, v):
        """Accept comma-separated strings, drop blanks, keep order."""
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        return [item.strip() for item in v if isinstance(item, str) and item.strip()]

    @field_validator("content_style", mode="before")
    @classmethod
    def unknown_style_is_balanced(cls, v):
        if isinstance(v, str) and v not in {s.value for s in ContentStyle}:
            return ContentStyle.BALANCED
        return v


class GenerationRequest(BaseModelConfig):
    """One orchestration call. Ephemeral."""

    model_config = ConfigDict(str_strip_whitespace=True)

    topic: str = Field(
        ...,
        min_length=GENERATION_SHAPE.MIN_TOPIC_LENGTH,
        max_length=GENERATION_SHAPE.MAX_TOPIC_LENGTH,
        description="Subject of the post",
    )
    platform: Platform
    content_type: ContentType = ContentType.TEXT_ONLY
    audience: str = Field(default="general audience", max_length=200)
    keywords: Optional[str] = Field(default=None, max_length=500)
    tone: Optional[str] = Field(default=None, max_length=100)
    category: Optional[str] = Field(default=None, max_length=100)
    options: AdvancedOptions = Field(default_factory=AdvancedOptions)

    @field_validator("audience", mode="before")
    @classmethod
    def default_blank_audience(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return "general audience"
        return v

    @field_validator("keywords", "tone", "category", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class CallerIdentity(BaseModelConfig):
    """
    Who is asking: an authenticated user id or an anonymous session marker.

    Subject ids namespace the two so a session marker can never collide
    with a user id in the usage store.
    """

    user_id: Optional[str] = None
    session_id: Optional[str] = None

    @model_validator(mode="after")
    def require_identity(self) -> "CallerIdentity":
        if not self.user_id and not self.session_id:
            raise ValueError("Caller must carry a user id or a session marker")
        return self

    @property
    def is_anonymous(self) -> bool:
        return not self.user_id

    @property
    def subject_id(self) -> str:
        if self.user_id:
            return f"{USER_SUBJECT_PREFIX}{self.user_id}"
        return f"{GUEST_SUBJECT_PREFIX}{self.session_id}"

    @classmethod
    def for_user(cls, user_id: str) -> "CallerIdentity":
        return cls(user_id=user_id)

    @classmethod
    def for_session(cls, session_id: str) -> "CallerIdentity":
        return cls(session_id=session_id)


# =============================================================================
# RESULT MODELS
# =============================================================================


class MainContent(BaseModelConfig):
    title: str
    content: str
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    video_concept: Optional[str] = None
    video_concept_only: bool = False


class ContentVariation(BaseModelConfig):
    title: Optional[str] = None
    content: str


class GenerationResult(BaseModelConfig):
    """
    Composite output of one orchestration.

    main_content is always populated; fallback synthesis guarantees it.
    """

    main_content: MainContent
    variations: list[ContentVariation] = Field(default_factory=list)
    source: ResultSource = ResultSource.PROVIDER
    content_id: Optional[str] = None

    @property
    def is_fallback(self) -> bool:
        return self.source is ResultSource.FALLBACK


class DeniedResponse(BaseModelConfig):
    """Reason-coded admission denial the caller renders as signup/upgrade."""

    reason: DenialReason
    message: str
    requires_signup: bool = False
    requires_upgrade: bool = False
    usage_count: int
    usage_limit: int


# =============================================================================
# USAGE
# =============================================================================


class UsageRecord(BaseModelConfig):
    """Per-subject generation counter and subscription state."""

    subject_id: str = Field(..., min_length=1)
    usage_count: int = Field(default=0, ge=0)
    subscription_status: SubscriptionStatus = SubscriptionStatus.FREE
    reset_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_guest(self) -> bool:
        return self.subject_id.startswith(GUEST_SUBJECT_PREFIX)

    @property
    def tier(self) -> SubscriptionTier:
        if self.is_guest:
            return SubscriptionTier.GUEST
        return SubscriptionTier.from_status(self.subscription_status)


class UsageSummary(BaseModelConfig):
    """Caller-facing view of a usage record."""

    usage_count: int
    usage_limit: Optional[int] = None
    subscription_status: SubscriptionStatus
    tier: SubscriptionTier
    reset_at: datetime

    @computed_field
    @property
    def remaining(self) -> Optional[int]:
        if self.usage_limit is None:
            return None
        return max(self.usage_limit - self.usage_count, 0)


# =============================================================================
# PERSISTENCE
# =============================================================================


class PersistedContent(BaseModelConfig):
    """Accepted main content written once per orchestration."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str
    content: str
    platform: Platform
    content_type: ContentType
    user_id: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def from_result(
        cls,
        result: GenerationResult,
        request: GenerationRequest,
        caller: CallerIdentity,
    ) -> "PersistedContent":
        main = result.main_content
        return cls(
            title=main.title,
            content=main.content,
            platform=request.platform,
            content_type=request.content_type,
            user_id=caller.user_id,
            category=request.category,
            image_url=main.image_url,
            video_url=main.video_url,
        )


# =============================================================================
# PIPELINE VALUE OBJECTS
# =============================================================================


@dataclass(frozen=True)
class ResolvedConstraints:
    """Platform- and option-derived limits handed to the prompt builder."""

    platform: Platform
    platform_limit: int
    effective_max_length: int
    style: ContentStyle
    style_guidance: str
    include_emojis: bool
    include_cta: bool
    include_hashtags: bool
    required_hashtags: Tuple[str, ...] = ()
    forbidden_words: Tuple[str, ...] = ()
    temperature: float = 0.7


@dataclass(frozen=True)
class PromptPayload:
    """Provider-ready instruction block."""

    provider: ModelProvider
    system: str
    user: str
    max_length: int
    expects_json: bool = True


@dataclass(frozen=True)
class FallbackContext:
    """What the fallback synthesizer needs to derive content offline."""

    topic: str
    platform: Platform
    content_type: ContentType
    constraints: ResolvedConstraints


@dataclass(frozen=True)
class VideoAttachment:
    url: str
    concept: Optional[str] = None
    concept_only: bool = True


@dataclass(frozen=True)
class MediaOutcome:
    """Result of one best-effort media step."""

    kind: MediaKind
    url: Optional[str] = None
    video: Optional[VideoAttachment] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and (self.url is not None or self.video is not None)


# =============================================================================
# ADMISSION DECISIONS
# =============================================================================


@dataclass(frozen=True)
class Allow:
    record: UsageRecord
    tier: SubscriptionTier


@dataclass(frozen=True)
class Deny:
    reason: DenialReason
    record: UsageRecord
    limit: int
    message: str = ""

    def to_response(self) -> DeniedResponse:
        return DeniedResponse(
            reason=self.reason,
            message=self.message,
            requires_signup=self.reason is DenialReason.GUEST_LIMIT_REACHED,
            requires_upgrade=self.reason is DenialReason.FREE_LIMIT_REACHED,
            usage_count=self.record.usage_count,
            usage_limit=self.limit,
        )


AdmissionDecision = Union[Allow, Deny]
