"""
System Constants & Invariants
==============================
Immutable domain constants: per-platform hard character caps, style
guidance sentences, the default (provider, tier) → model table and the
fallback copy used when no provider output is usable.

Architecture: Value Objects + Namespace Organization
"""

from dataclasses import dataclass
from typing import Dict, Final, Tuple

from core.enums import ContentStyle, ModelProvider, Platform, SubscriptionTier

# =============================================================================
# PLATFORM LIMITS
# =============================================================================

PLATFORM_LIMITS: Final[Dict[Platform, int]] = {
    Platform.TWITTER: 280,
    Platform.INSTAGRAM: 2200,
    Platform.LINKEDIN: 3000,
    Platform.FACEBOOK: 63206,
}

MAX_PLATFORM_LIMIT: Final[int] = max(PLATFORM_LIMITS.values())


# =============================================================================
# STYLE GUIDANCE
# =============================================================================

STYLE_GUIDANCE: Final[Dict[ContentStyle, str]] = {
    ContentStyle.BALANCED: "Use a well-balanced approach that's professional but approachable",
    ContentStyle.FORMAL: "Maintain a formal and professional tone throughout the content",
    ContentStyle.FRIENDLY: "Use a conversational, friendly tone as if talking to a friend",
    ContentStyle.PERSUASIVE: "Focus on persuasive language that drives action and conversions",
    ContentStyle.EDUCATIONAL: (
        "Present information in an educational manner with facts and insights"
    ),
    ContentStyle.STORYTELLING: (
        "Structure the content as a narrative with a beginning, middle, and end"
    ),
}


# =============================================================================
# MODEL TABLE
# =============================================================================

DEFAULT_MODEL_TABLE: Final[Dict[Tuple[ModelProvider, SubscriptionTier], str]] = {
    (ModelProvider.OPENAI, SubscriptionTier.PAID): "gpt-4o",
    (ModelProvider.OPENAI, SubscriptionTier.FREE): "gpt-4o-mini",
    (ModelProvider.OPENAI, SubscriptionTier.GUEST): "gpt-4o-mini",
    (ModelProvider.ANTHROPIC, SubscriptionTier.PAID): "claude-sonnet-4-20250514",
    (ModelProvider.ANTHROPIC, SubscriptionTier.FREE): "claude-haiku-4-5-20251001",
    (ModelProvider.ANTHROPIC, SubscriptionTier.GUEST): "claude-haiku-4-5-20251001",
}


# =============================================================================
# GENERATION SHAPE
# =============================================================================


@dataclass(frozen=True)
class GenerationShape:
    """Fixed shape of every generation response."""

    VARIATION_COUNT: int = 3
    MIN_TOPIC_LENGTH: int = 3
    MAX_TOPIC_LENGTH: int = 100
    MIN_MAX_LENGTH: int = 10
    IMAGE_PROMPT_CONTEXT_CHARS: int = 200


GENERATION_SHAPE: Final = GenerationShape()

FALLBACK_HASHTAGS: Final[Tuple[str, ...]] = ("#ContentCreation", "#SocialMedia")

__all__ = [
    "PLATFORM_LIMITS",
    "MAX_PLATFORM_LIMIT",
    "STYLE_GUIDANCE",
    "DEFAULT_MODEL_TABLE",
    "GENERATION_SHAPE",
    "FALLBACK_HASHTAGS",
]
