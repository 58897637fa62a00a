"""
Constraint Resolver: platform caps merged with caller options.

Pure and deterministic. Produces the ResolvedConstraints every later
stage (prompt building, fallback synthesis) reads its limits from.
"""

from typing import Iterable, Tuple

from config.constants import PLATFORM_LIMITS, STYLE_GUIDANCE
from core.enums import ContentStyle, Platform
from core.models import AdvancedOptions, ResolvedConstraints


def effective_max_length(platform: Platform, requested: int) -> int:
    """The smaller of the requested length and the platform's hard cap."""
    return min(requested, PLATFORM_LIMITS[platform])


def style_guidance(style: ContentStyle) -> str:
    return STYLE_GUIDANCE.get(style, STYLE_GUIDANCE[ContentStyle.BALANCED])


def _unique(items: Iterable[str], *, casefold: bool = False) -> Tuple[str, ...]:
    seen = set()
    result = []
    for item in items:
        key = item.casefold() if casefold else item
        if key in seen:
            continue
        seen.add(key)
        result.append(item)
    return tuple(result)


def resolve_constraints(platform: Platform, options: AdvancedOptions) -> ResolvedConstraints:
    """
    Resolve per-request constraints.

    Custom hashtags only survive when hashtags are enabled, and are kept
    verbatim in caller order. Forbidden words are de-duplicated without
    regard to case.
    """
    required_hashtags = _unique(options.custom_hashtags) if options.include_hashtags else ()

    return ResolvedConstraints(
        platform=platform,
        platform_limit=PLATFORM_LIMITS[platform],
        effective_max_length=effective_max_length(platform, options.max_length),
        style=options.content_style,
        style_guidance=style_guidance(options.content_style),
        include_emojis=options.include_emojis,
        include_cta=options.include_cta,
        include_hashtags=options.include_hashtags,
        required_hashtags=required_hashtags,
        forbidden_words=_unique(options.avoid_words, casefold=True),
        temperature=options.creativity,
    )
