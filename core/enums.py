"""
Domain Enumerations & Type Taxonomy
====================================
String enumerations for every closed vocabulary the generation pipeline
understands: platforms, content formats, writing styles, provider
selectors, subscription states and orchestration states.

String enums serialize to JSON and persist to storage without an integer
mapping table.
"""

from enum import Enum, IntEnum


class Platform(str, Enum):
    """Social networks content can be generated for."""

    TWITTER = "twitter"
    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"
    LINKEDIN = "linkedin"

    def __str__(self) -> str:
        return self.value


class ContentType(str, Enum):
    """
    Post formats.

    Only image and video posts trigger media augmentation; the others are
    text-only from the orchestrator's point of view.
    """

    TEXT_ONLY = "textOnly"
    POST_WITH_IMAGE = "postWithImage"
    POST_WITH_VIDEO = "postWithVideo"
    CAROUSEL = "carousel"
    STORY = "story"

    @property
    def wants_image(self) -> bool:
        return self is ContentType.POST_WITH_IMAGE

    @property
    def wants_video(self) -> bool:
        return self is ContentType.POST_WITH_VIDEO

    @property
    def display_name(self) -> str:
        names = {
            ContentType.TEXT_ONLY: "text post",
            ContentType.POST_WITH_IMAGE: "image post",
            ContentType.POST_WITH_VIDEO: "video post",
            ContentType.CAROUSEL: "carousel",
            ContentType.STORY: "story",
        }
        return names[self]


class ContentStyle(str, Enum):
    """Writing style vocabulary exposed in advanced options."""

    BALANCED = "balanced"
    FORMAL = "formal"
    FRIENDLY = "friendly"
    PERSUASIVE = "persuasive"
    EDUCATIONAL = "educational"
    STORYTELLING = "storytelling"


class LanguageModel(str, Enum):
    """Caller-facing provider selector."""

    OPENAI = "openai"
    CLAUDE = "claude"


class ModelProvider(str, Enum):
    """LLM backends wrapped by a provider adapter."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"

    @classmethod
    def from_language_model(cls, language_model: LanguageModel) -> "ModelProvider":
        if language_model is LanguageModel.CLAUDE:
            return cls.ANTHROPIC
        return cls.OPENAI


class SubscriptionStatus(str, Enum):
    """Billing state of an account as reported by the billing collaborator."""

    FREE = "free"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"

    @property
    def is_paid(self) -> bool:
        return self is SubscriptionStatus.ACTIVE


class SubscriptionTier(str, Enum):
    """
    Tier hint passed to provider adapters.

    GUEST and FREE both receive the lower-cost model of a provider;
    PAID receives the higher-capability one.
    """

    GUEST = "guest"
    FREE = "free"
    PAID = "paid"

    @classmethod
    def from_status(cls, status: SubscriptionStatus) -> "SubscriptionTier":
        return cls.PAID if status.is_paid else cls.FREE


class DenialReason(str, Enum):
    """Machine-readable admission denial codes."""

    GUEST_LIMIT_REACHED = "GUEST_LIMIT_REACHED"
    FREE_LIMIT_REACHED = "FREE_LIMIT_REACHED"


class ResultSource(str, Enum):
    """Where the text of a GenerationResult came from."""

    PROVIDER = "provider"
    FALLBACK = "fallback"


class OrchestrationState(str, Enum):
    """
    Orchestrator state machine.

    DENIED and FALLBACK_RETURNED are terminal alongside RETURNED.
    """

    RECEIVED = "received"
    DENIED = "denied"
    ADMITTED = "admitted"
    PROMPTED = "prompted"
    PROVIDER_CALLED = "provider_called"
    NORMALIZED = "normalized"
    MEDIA_ATTACHED = "media_attached"
    PERSISTED = "persisted"
    RETURNED = "returned"
    FALLBACK_RETURNED = "fallback_returned"

    @property
    def is_terminal(self) -> bool:
        return self in (
            OrchestrationState.DENIED,
            OrchestrationState.RETURNED,
            OrchestrationState.FALLBACK_RETURNED,
        )


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class ErrorSeverity(IntEnum):
    """
    Error classification by impact severity.

    Determines logging level.
    """

    CRITICAL = 5  # System failure, immediate intervention required
    ERROR = 4  # Operation failed
    WARNING = 3  # Degraded result, request still served
    INFO = 2  # Notable event, no action required
    DEBUG = 1

