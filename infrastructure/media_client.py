"""
Media provider clients.

- OpenAIImageClient: image generation through the OpenAI Images API
- GeminiConceptClient: short video concepts through the Gemini REST API

Both raise MediaError for every failure mode (missing credentials,
transport errors, timeouts, unusable responses).
"""

import asyncio
from typing import Any, Dict, Optional

import httpx
import openai
from loguru import logger
from openai import AsyncOpenAI

from config.settings import MediaSettings
from core.enums import MediaKind
from core.exceptions import MediaError


class OpenAIImageClient:
    """Generate one image and return its URL."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        model: str = "dall-e-3",
        size: str = "1024x1024",
        quality: str = "standard",
        timeout: float = 90.0,
        client: Optional[AsyncOpenAI] = None,
    ):
        if client is None and api_key:
            client = AsyncOpenAI(api_key=api_key, timeout=httpx.Timeout(timeout), max_retries=0)
        self.client = client
        self.model = model
        self.size = size
        self.quality = quality
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    async def generate_image(self, prompt: str) -> str:
        if not self.is_configured:
            raise MediaError("Image provider is not configured", kind=MediaKind.IMAGE)

        try:
            response = await asyncio.wait_for(
                self.client.images.generate(
                    model=self.model,
                    prompt=prompt,
                    n=1,
                    size=self.size,
                    quality=self.quality,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise MediaError(
                f"Image generation timed out after {self.timeout}s", kind=MediaKind.IMAGE, cause=e
            ) from e
        except openai.OpenAIError as e:
            raise MediaError(f"Image generation failed: {e}", kind=MediaKind.IMAGE, cause=e) from e

        url = response.data[0].url if response.data else None
        if not url:
            raise MediaError("Image provider returned no URL", kind=MediaKind.IMAGE)
        return url

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.close()


class GeminiConceptClient:
    """Ask a Gemini model for a short text concept."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        model: str = "gemini-1.5-flash",
        timeout: float = 90.0,
        max_output_tokens: int = 500,
        temperature: float = 0.7,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_output_tokens = max_output_tokens
        self.temperature = temperature
        self.http_client = http_client or httpx.AsyncClient(
            base_url=base_url, timeout=httpx.Timeout(timeout)
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def generate_concept(self, prompt: str) -> str:
        if not self.is_configured:
            raise MediaError("Video concept provider is not configured", kind=MediaKind.VIDEO)

        body: Dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "maxOutputTokens": self.max_output_tokens,
                "temperature": self.temperature,
            },
        }

        try:
            response = await self.http_client.post(
                f"/models/{self.model}:generateContent",
                params={"key": self.api_key},
                json=body,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise MediaError("Video concept request timed out", kind=MediaKind.VIDEO, cause=e) from e
        except httpx.HTTPStatusError as e:
            raise MediaError(
                f"Video concept request failed with status {e.response.status_code}",
                kind=MediaKind.VIDEO,
                cause=e,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise MediaError(f"Video concept request failed: {e}", kind=MediaKind.VIDEO, cause=e) from e

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise MediaError(
                "Video concept response has no text candidate", kind=MediaKind.VIDEO, cause=e
            ) from e

        if not isinstance(text, str) or not text.strip():
            raise MediaError("Video concept response is empty", kind=MediaKind.VIDEO)
        return text.strip()

    async def aclose(self) -> None:
        await self.http_client.aclose()


def build_media_clients(
    media_settings: MediaSettings,
    openai_api_key: Optional[str] = None,
) -> Dict[MediaKind, Any]:
    gemini_key = media_settings.gemini_api_key
    clients = {
        MediaKind.IMAGE: OpenAIImageClient(
            openai_api_key,
            model=media_settings.image_model,
            size=media_settings.image_size,
            quality=media_settings.image_quality,
            timeout=media_settings.timeout,
        ),
        MediaKind.VIDEO: GeminiConceptClient(
            gemini_key.get_secret_value() if gemini_key else None,
            base_url=media_settings.gemini_base_url,
            model=media_settings.video_concept_model,
            timeout=media_settings.timeout,
        ),
    }
    logger.info(
        f"Media clients initialized | image={clients[MediaKind.IMAGE].is_configured} | "
        f"video={clients[MediaKind.VIDEO].is_configured}"
    )
    return clients
