"""
Prompt Builder: request + resolved constraints → provider instruction block.

Both provider families receive the same requirements (platform, content
type, audience, character ceiling, emoji/CTA/hashtag directives, required
hashtags, forbidden words, JSON shape). OpenAI gets a system persona and a
structured requirement list; Claude gets a single terser message that
ends with the JSON contract.
"""

from typing import List

from loguru import logger

from config.constants import GENERATION_SHAPE
from core.enums import ContentType, ModelProvider, Platform
from core.models import GenerationRequest, MainContent, PromptPayload, ResolvedConstraints

GENERATION_JSON_SHAPE = (
    "{\n"
    '  "mainContent": {"title": "Title", "content": "Main post content"},\n'
    '  "variations": [\n'
    '    {"content": "Variation 1"},\n'
    '    {"content": "Variation 2"},\n'
    '    {"content": "Variation 3"}\n'
    "  ]\n"
    "}"
)

VARIATIONS_JSON_SHAPE = (
    '{"variations": [{"content": "Variation 1"}, {"content": "Variation 2"}, '
    '{"content": "Variation 3"}]}'
)


class PromptBuilder:
    """
    Builds provider-specific prompts.

    Stateless; one instance is shared for the process lifetime.
    """

    def build(
        self,
        request: GenerationRequest,
        constraints: ResolvedConstraints,
        provider: ModelProvider,
    ) -> PromptPayload:
        """Build the main-generation prompt for one provider family."""
        directives = self._directives(constraints)

        if provider is ModelProvider.ANTHROPIC:
            payload = self._build_claude(request, constraints, directives)
        else:
            payload = self._build_openai(request, constraints, directives)

        logger.debug(
            f"Prompt built | provider={provider.value} | platform={request.platform.value} | "
            f"max_length={constraints.effective_max_length} | chars={len(payload.user)}"
        )
        return payload

    def build_variations(
        self,
        platform: Platform,
        content_type: ContentType,
        base_content: MainContent,
        constraints: ResolvedConstraints,
        provider: ModelProvider,
    ) -> PromptPayload:
        """Prompt for additional variations of already generated content."""
        lines = [
            f'Based on this {platform.value} {content_type.display_name}: "{base_content.content}"',
            "",
            f"Generate {GENERATION_SHAPE.VARIATION_COUNT} more creative variations "
            "with similar style and message.",
            "Keep the same tone and key elements but make each unique.",
            f"Maximum {constraints.effective_max_length} characters each.",
        ]
        lines.extend(f"- {d}" for d in self._directives(constraints))
        lines.append("")
        lines.append(f"Respond only with valid JSON in this exact format: {VARIATIONS_JSON_SHAPE}")

        system = (
            ""
            if provider is ModelProvider.ANTHROPIC
            else f"You rewrite {platform.value} posts. Respond with a single JSON object."
        )
        return PromptPayload(
            provider=provider,
            system=system,
            user="\n".join(lines),
            max_length=constraints.effective_max_length,
        )

    # =========================================================================
    # PROVIDER FAMILIES
    # =========================================================================

    def _build_openai(
        self,
        request: GenerationRequest,
        constraints: ResolvedConstraints,
        directives: List[str],
    ) -> PromptPayload:
        platform = request.platform.value
        system = (
            f"You are an expert social media content creator specializing in {platform}. "
            "Create engaging, authentic content that drives real engagement and follows "
            "platform best practices. Always answer with a single JSON object."
        )

        lines = [
            f'Write a {request.content_type.display_name} for {platform} about "{request.topic}".',
            "",
            f"Platform: {platform}",
            f"Content Type: {request.content_type.display_name}",
            f"Target Audience: {request.audience}",
            f"Style: {constraints.style.value}. {constraints.style_guidance}.",
        ]
        if request.tone:
            lines.append(f"Tone: {request.tone}")
        if request.keywords:
            lines.append(f"Keywords to work in: {request.keywords}")
        lines.append(f"Character Limit: {constraints.effective_max_length}")
        lines.append("")
        lines.append("Requirements:")
        lines.extend(f"- {d}" for d in directives)
        lines.append("")
        lines.append("Generate content that feels authentic and valuable. Return JSON format:")
        lines.append(GENERATION_JSON_SHAPE)

        return PromptPayload(
            provider=ModelProvider.OPENAI,
            system=system,
            user="\n".join(lines),
            max_length=constraints.effective_max_length,
        )

    def _build_claude(
        self,
        request: GenerationRequest,
        constraints: ResolvedConstraints,
        directives: List[str],
    ) -> PromptPayload:
        lines = [
            f"Create {request.content_type.display_name} content for "
            f'{request.platform.value} about "{request.topic}".',
            f"Target audience: {request.audience}",
        ]
        if request.tone:
            lines.append(f"Tone: {request.tone}")
        if request.keywords:
            lines.append(f"Keywords to include: {request.keywords}")
        lines.append(f"Style: {constraints.style.value} ({constraints.style_guidance.lower()})")
        lines.append("")
        lines.append("Requirements:")
        lines.extend(f"- {d}" for d in directives)
        lines.append("")
        lines.append(
            f"Generate 1 main post and {GENERATION_SHAPE.VARIATION_COUNT} variations. "
            "Respond only with valid JSON in this exact format, no commentary:"
        )
        lines.append(GENERATION_JSON_SHAPE)

        return PromptPayload(
            provider=ModelProvider.ANTHROPIC,
            system="",
            user="\n".join(lines),
            max_length=constraints.effective_max_length,
        )

    # =========================================================================
    # SHARED REQUIREMENTS
    # =========================================================================

    @staticmethod
    def _directives(constraints: ResolvedConstraints) -> List[str]:
        directives = [
            f"Stay under {constraints.effective_max_length} characters for the main "
            "content and for every variation",
            "Include 2-3 relevant emojis naturally" if constraints.include_emojis else "No emojis",
            (
                "Include a compelling call-to-action"
                if constraints.include_cta
                else "No call-to-action"
            ),
        ]

        if constraints.include_hashtags:
            directives.append("Include 3-5 strategic hashtags")
            if constraints.required_hashtags:
                directives.append(
                    "Must include these hashtags exactly as written: "
                    + ", ".join(constraints.required_hashtags)
                )
        else:
            directives.append("No hashtags")

        if constraints.forbidden_words:
            directives.append(
                "Never use these words: " + ", ".join(constraints.forbidden_words)
            )
        return directives
