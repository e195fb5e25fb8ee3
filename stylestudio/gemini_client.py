"""Gemini image-model client used for both hairstyle generation and remixing.

Flow of one call:
1. POST the source image + instruction to `models/{model}:generateContent`
2. Retry internal server faults (HTTP 500 / status INTERNAL) with exponential backoff
3. Pull the first inline image out of the response, or raise NoImageReturned

`generate` adds a second tier on top: when the model refuses the primary
instruction it tries once more with the softer fallback instruction.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from config.settings import Settings

from .errors import (
    GenerationFailed,
    MissingCredentials,
    ModelRequestError,
    NoImageReturned,
    RemixFailed,
    TransientServerError,
)
from .model import ImagePayload
from .prompt_builder import build_fallback_instruction

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def _is_internal_error(resp: httpx.Response) -> bool:
    if resp.status_code == 500:
        return True
    try:
        body = resp.json()
    except ValueError:
        return "INTERNAL" in resp.text
    err = body.get("error") if isinstance(body, dict) else None
    return isinstance(err, dict) and (err.get("code") == 500 or err.get("status") == "INTERNAL")


def extract_image(response: Dict[str, Any]) -> ImagePayload:
    """
    Return the first inline image of the first candidate.
    If the model only sent text back, raise NoImageReturned with that text.
    """
    candidates = response.get("candidates") or []
    parts = []
    if candidates:
        content = candidates[0].get("content") or {}
        parts = content.get("parts") or []

    texts = []
    for part in parts:
        inline = part.get("inlineData") or part.get("inline_data")
        if inline and inline.get("data"):
            media_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            return ImagePayload(media_type=media_type, data=inline["data"])
        if part.get("text"):
            texts.append(part["text"])

    text = "".join(texts) or None
    logger.error("[Gemini] API did not return an image. Response: %s", text)
    raise NoImageReturned(text)


class GeminiClient:
    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash-image-preview",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        max_attempts: int = 3,
        initial_delay: float = 1.0,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.max_attempts = max_attempts
        self.initial_delay = initial_delay
        self.timeout = timeout
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "GeminiClient":
        if not settings.GEMINI_API_KEY:
            raise MissingCredentials(
                "GEMINI_API_KEY is not set (checked the environment and config/.env)"
            )
        return cls(
            api_key=settings.GEMINI_API_KEY,
            model=settings.GEMINI_MODEL,
            base_url=settings.GEMINI_API_URL,
            max_attempts=settings.MAX_ATTEMPTS,
            initial_delay=settings.INITIAL_RETRY_DELAY,
            timeout=settings.REQUEST_TIMEOUT,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _post(self, source: ImagePayload, instruction: str) -> Dict[str, Any]:
        payload = {
            "contents": [
                {
                    "parts": [
                        {"inlineData": {"mimeType": source.media_type, "data": source.data}},
                        {"text": instruction},
                    ]
                }
            ]
        }
        url = f"{self.base_url}/models/{self.model}:generateContent"
        headers = {"x-goog-api-key": self.api_key}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            r = await client.post(url, json=payload, headers=headers)

        if r.status_code != 200:
            detail = r.text[:500]
            if _is_internal_error(r):
                raise TransientServerError(
                    f"Gemini internal error ({r.status_code}): {detail}", r.status_code
                )
            raise ModelRequestError(f"Gemini returned {r.status_code}: {detail}", r.status_code)
        return r.json()

    async def call_with_retry(self, source: ImagePayload, instruction: str) -> Dict[str, Any]:
        """
        Call the model, retrying only internal server faults.
        Delay before attempt k+1 is initial_delay * 2**(k-1).
        The last failure propagates unchanged.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._post(source, instruction)
            except TransientServerError as e:
                logger.warning(
                    "[Gemini] Error calling API (attempt %d/%d): %s", attempt, self.max_attempts, e
                )
                if attempt >= self.max_attempts:
                    raise
                delay = self.initial_delay * 2 ** (attempt - 1)
                logger.info("[Gemini] Internal error detected, retrying in %.1fs...", delay)
                await self._sleep(delay)
        raise RuntimeError("max_attempts must be at least 1")

    # ------------------------------------------------------------------
    # Generation / remix
    # ------------------------------------------------------------------

    async def generate(
        self,
        source: ImagePayload,
        instruction: str,
        fallback_label: str = "",
        category: str = "",
    ) -> ImagePayload:
        try:
            logger.debug("[Gemini] Attempting generation with original prompt...")
            return extract_image(await self.call_with_retry(source, instruction))
        except NoImageReturned:
            logger.warning("[Gemini] Original prompt was probably blocked, trying fallback prompt.")
            if not fallback_label or not category:
                logger.error("[Gemini] No hairstyle or category given for the fallback prompt.")
                raise
        except Exception as e:
            logger.error("[Gemini] Unrecoverable error during image generation: %s", e)
            raise GenerationFailed(f"The AI model could not generate an image. Details: {e}") from e

        fallback = build_fallback_instruction(fallback_label, category)
        try:
            logger.info("[Gemini] Attempting generation with fallback prompt for %s...", fallback_label)
            return extract_image(await self.call_with_retry(source, fallback))
        except Exception as e:
            logger.error("[Gemini] Fallback prompt also failed: %s", e)
            raise GenerationFailed(
                f"The AI model failed with both the original and fallback prompts. Last error: {e}"
            ) from e

    async def remix(self, source: ImagePayload, instruction: str) -> ImagePayload:
        try:
            logger.debug("[Gemini] Attempting remix generation...")
            return extract_image(await self.call_with_retry(source, instruction))
        except Exception as e:
            logger.error("[Gemini] Unrecoverable error during image remixing: %s", e)
            raise RemixFailed(f"The AI model failed to modify the image. Details: {e}") from e
