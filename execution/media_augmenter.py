"""
Media Augmenters: best-effort image and video enrichment of generated text.

Each augmenter raises MediaError on any failure; the orchestrator turns
that into "no media attached".

The video augmenter runs in concept-only mode: it asks the concept model
for a short video concept and attaches a configured staging asset, and
the result says so through VideoAttachment.concept_only.
"""

from typing import Optional

from loguru import logger

from config.constants import GENERATION_SHAPE
from core.enums import ContentStyle, MediaKind, Platform
from core.exceptions import MediaError
from core.models import VideoAttachment
from execution.constraint_resolver import style_guidance
from infrastructure.media_client import GeminiConceptClient, OpenAIImageClient


def _summary(text: str) -> str:
    return " ".join(text.split())[: GENERATION_SHAPE.IMAGE_PROMPT_CONTEXT_CHARS]


class ImageAugmenter:
    kind = MediaKind.IMAGE

    def __init__(self, client: OpenAIImageClient):
        self.client = client

    def build_prompt(
        self,
        text: str,
        platform: Platform,
        style: ContentStyle = ContentStyle.BALANCED,
    ) -> str:
        return (
            f"Create a visually appealing social media image for {platform.value} "
            f"that represents this content: {_summary(text)}. "
            f"Visual tone: {style_guidance(style).lower()}. "
            "Clean composition, vibrant colors, no text overlay."
        )

    async def augment(
        self,
        text: str,
        platform: Platform,
        style: ContentStyle = ContentStyle.BALANCED,
    ) -> str:
        """Generate an image for the text and return its URL."""
        if not text.strip():
            raise MediaError("No content to illustrate", kind=self.kind)

        url = await self.client.generate_image(self.build_prompt(text, platform, style))
        logger.info(f"Image attached | platform={platform.value}")
        return url


class VideoAugmenter:
    kind = MediaKind.VIDEO

    def __init__(self, client: GeminiConceptClient, placeholder_url: str):
        self.client = client
        self.placeholder_url = placeholder_url

    def build_prompt(self, text: str, platform: Platform) -> str:
        return (
            f"Create a short video concept for {platform.value} based on this content: "
            f"{_summary(text)}. Describe the opening shot, two or three key scenes and "
            "the closing frame in under 120 words."
        )

    async def augment(
        self,
        text: str,
        platform: Platform,
        style: Optional[ContentStyle] = None,
    ) -> VideoAttachment:
        """Produce a video concept and attach the staging video asset."""
        if not text.strip():
            raise MediaError("No content to build a video concept from", kind=self.kind)

        concept = await self.client.generate_concept(self.build_prompt(text, platform))
        logger.info(f"Video concept attached | platform={platform.value} | concept_only=True")
        return VideoAttachment(url=self.placeholder_url, concept=concept, concept_only=True)
