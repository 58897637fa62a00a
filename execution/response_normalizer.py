"""
Response Normalizer & Fallback Synthesizer
===========================================
Provider output is untrusted text. The normalizer unwraps it (code fences,
surrounding prose), parses it as JSON and checks the schema explicitly,
yielding a tagged outcome:

    Parsed(main_content, variations) | Malformed(reason)

normalize() turns a Malformed outcome into deterministic fallback content
so callers always get something presentable. Everything here is pure: no
I/O, no clock, no randomness, so the same raw text always normalizes to
the same result.
"""

import json
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union

from config.constants import FALLBACK_HASHTAGS, GENERATION_SHAPE
from core.enums import ResultSource
from core.models import (
    ContentVariation,
    FallbackContext,
    GenerationResult,
    MainContent,
    ResolvedConstraints,
)


@dataclass(frozen=True)
class Parsed:
    main_content: MainContent
    variations: Tuple[ContentVariation, ...]


@dataclass(frozen=True)
class Malformed:
    reason: str


ParseOutcome = Union[Parsed, Malformed]


# =============================================================================
# JSON EXTRACTION
# =============================================================================


def _strip_code_fence(text: str) -> str:
    if not text.startswith("```"):
        return text
    body = text.split("\n", 1)[1] if "\n" in text else ""
    end = body.rfind("```")
    return body[:end] if end != -1 else body


def extract_json(raw: Optional[str]) -> Any:
    """
    Decode the JSON value embedded in provider text.

    Raises:
        ValueError: If no JSON value can be decoded
    """
    if raw is None:
        raise ValueError("empty response")
    text = _strip_code_fence(raw.strip()).strip()
    if not text:
        raise ValueError("empty response")

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Prose around the payload: take the outermost object or array.
    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = text.find(opener), text.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(text[start : end + 1])
            except json.JSONDecodeError:
                continue
    raise ValueError("response is not valid JSON")


def _non_empty_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def coerce_variations(value: Any) -> List[ContentVariation]:
    """Keep well-formed variation entries; anything else becomes []."""
    if not isinstance(value, list):
        return []
    variations = []
    for item in value:
        if isinstance(item, str):
            item = {"content": item}
        if not isinstance(item, dict):
            continue
        content = _non_empty_str(item.get("content"))
        if content is None:
            continue
        variations.append(ContentVariation(title=_non_empty_str(item.get("title")), content=content))
    return variations


# =============================================================================
# FALLBACK SYNTHESIS
# =============================================================================


def _fit(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: max(limit - 1, 0)].rstrip() + "…"


class FallbackSynthesizer:
    """
    Network-free content derived from the topic, platform and content type.

    Honors the emoji and hashtag toggles and the effective character
    ceiling of the request it stands in for. Each piece of copy has
    shorter phrasings to step down to, and decorations are shed before
    the subject is cut, so the topic survives tight limits.
    """

    def synthesize(self, context: FallbackContext) -> GenerationResult:
        constraints = context.constraints
        topic = context.topic
        platform = context.platform.value.capitalize()

        title = f"{context.content_type.display_name.capitalize()} for {platform}"
        main = self._compose(
            [f"Check out this amazing content about {topic}!", f"All about {topic}!", topic],
            "🚀",
            constraints,
        )
        templates = [
            (
                [
                    f"Discover the power of {topic}! Perfect for your {platform} strategy.",
                    f"Discover {topic}!",
                    topic,
                ],
                "✨",
            ),
            (
                [
                    f"{topic} is trending! Don't miss out on this incredible opportunity.",
                    f"{topic} is trending!",
                    topic,
                ],
                "🔥",
            ),
            (
                [
                    f"Transform your {platform} presence with {topic}. Start today!",
                    f"{topic}: start today!",
                    topic,
                ],
                "💪",
            ),
        ]

        return GenerationResult(
            main_content=MainContent(title=title, content=main),
            variations=[
                ContentVariation(content=self._compose(phrasings, emoji, constraints))
                for phrasings, emoji in templates[: GENERATION_SHAPE.VARIATION_COUNT]
            ],
            source=ResultSource.FALLBACK,
        )

    def variations(self, base_title: str, constraints: ResolvedConstraints) -> List[ContentVariation]:
        """Stand-in variations for a more-variations request."""
        templates = [
            ([f"Another great take on {base_title}!", base_title], "🌟"),
            ([f"{base_title} - reimagined for maximum impact!", base_title], "💫"),
            ([f"Fresh perspective on {base_title}. Love it!", base_title], "❤️"),
        ]
        return [
            ContentVariation(content=self._compose(phrasings, emoji, constraints))
            for phrasings, emoji in templates[: GENERATION_SHAPE.VARIATION_COUNT]
        ]

    @classmethod
    def _compose(
        cls, phrasings: List[str], emoji: str, constraints: ResolvedConstraints
    ) -> str:
        """
        First phrasing that fits the effective length, trying each with full
        decoration, then emoji only, then bare. phrasings run longest to
        shortest and end with the bare subject, which is cut only when it
        alone exceeds the limit.
        """
        limit = constraints.effective_max_length
        for text in phrasings:
            for candidate in (
                cls._decorate(text, emoji, constraints),
                cls._decorate(text, emoji, constraints, hashtags=False),
                text,
            ):
                if len(candidate) <= limit:
                    return candidate
        return _fit(phrasings[-1], limit)

    @staticmethod
    def _decorate(
        text: str, emoji: str, constraints: ResolvedConstraints, hashtags: bool = True
    ) -> str:
        parts = [text]
        if constraints.include_emojis:
            parts.append(emoji)
        if hashtags and constraints.include_hashtags:
            parts.extend(constraints.required_hashtags or FALLBACK_HASHTAGS)
        return " ".join(parts)


# =============================================================================
# NORMALIZER
# =============================================================================


class ResponseNormalizer:
    """Schema check + fallback substitution for raw provider output."""

    def __init__(self, synthesizer: Optional[FallbackSynthesizer] = None):
        self.synthesizer = synthesizer or FallbackSynthesizer()

    def parse(self, raw: Optional[str]) -> ParseOutcome:
        """Validate raw generation output. Never raises."""
        try:
            data = extract_json(raw)
        except ValueError as e:
            return Malformed(reason=str(e))

        if not isinstance(data, dict):
            return Malformed(reason="top-level JSON value is not an object")

        main = data.get("mainContent")
        if not isinstance(main, dict):
            return Malformed(reason="mainContent missing or not an object")

        title = _non_empty_str(main.get("title"))
        content = _non_empty_str(main.get("content"))
        if title is None or content is None:
            return Malformed(reason="mainContent.title or mainContent.content missing")

        return Parsed(
            main_content=MainContent(title=title, content=content),
            variations=tuple(coerce_variations(data.get("variations"))),
        )

    def normalize(self, raw: Optional[str], context: FallbackContext) -> GenerationResult:
        """Raw provider output → GenerationResult, falling back on malformed input."""
        return self.from_outcome(self.parse(raw), context)

    def from_outcome(self, outcome: ParseOutcome, context: FallbackContext) -> GenerationResult:
        if isinstance(outcome, Parsed):
            return GenerationResult(
                main_content=outcome.main_content.model_copy(),
                variations=list(outcome.variations),
                source=ResultSource.PROVIDER,
            )
        return self.synthesizer.synthesize(context)

    def parse_variations(self, raw: Optional[str]) -> List[ContentVariation]:
        """
        Variations from a more-variations response.

        Accepts a bare array or an object with a "variations" array.
        Returns [] for anything unusable.
        """
        try:
            data = extract_json(raw)
        except ValueError:
            return []
        if isinstance(data, dict):
            data = data.get("variations")
        return coerce_variations(data)

    def normalize_variations(
        self,
        raw: Optional[str],
        base_title: str,
        constraints: ResolvedConstraints,
    ) -> List[ContentVariation]:
        variations = self.parse_variations(raw)
        if variations:
            return variations
        return self.synthesizer.variations(base_title, constraints)
