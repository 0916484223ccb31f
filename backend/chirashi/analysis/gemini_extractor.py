"""
Gemini vision client for flyer images.
Sends one image plus the instruction prompt and returns the raw model text,
retrying only when the API signals rate limiting.
"""

import asyncio
import re
from typing import Awaitable, Callable, Optional

from google import genai
from google.genai import types

from chirashi.config import DEFAULT_MODEL, PipelineLimits
from chirashi.errors import ExtractionError
from chirashi.logging_config import get_logger
from chirashi.models import NormalizedImage
from chirashi.analysis.prompts import build_flyer_prompt

logger = get_logger("extractor")

_RATE_LIMIT_RE = re.compile(
    r"429|exhausted|rate[\s_-]?limit|\brate\b|quota",
    re.IGNORECASE,
)

# Matches "retry in 37s", "retryDelay": "37s", 'retryDelay': '37.2s'
_RETRY_DELAY_RE = re.compile(r"retry\s*(?:in|delay)[\"':\s]*(\d+(?:\.\d+)?)", re.IGNORECASE)


def is_rate_limit_error(error: Exception) -> bool:
    """429 status on the SDK error, or quota vocabulary in its message."""
    if getattr(error, "code", None) == 429:
        return True
    return bool(_RATE_LIMIT_RE.search(str(error)))


def parse_retry_delay(message: str, default: float) -> float:
    """
    Wait suggested by the error payload, never shorter than the default.
    """
    match = _RETRY_DELAY_RE.search(message)
    if not match:
        return default
    return max(float(match.group(1)), default)


class GeminiFlyerExtractor:
    """Extraction client. One instance per run, shared across stores."""

    def __init__(self, api_key: Optional[str] = None,
                 model_name: str = DEFAULT_MODEL,
                 limits: Optional[PipelineLimits] = None,
                 client: Optional[genai.Client] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 prompt: Optional[str] = None):
        if client is None and not api_key:
            raise ExtractionError("Gemini client needs an API key")
        self.model_name = model_name
        self.limits = limits or PipelineLimits()
        self._client = client or genai.Client(api_key=api_key)
        self._sleep = sleep
        self.prompt = prompt or build_flyer_prompt()
        logger.info(f"Gemini extractor initialized ({model_name})")

    async def _generate(self, image: NormalizedImage) -> str:
        resp = await self._client.aio.models.generate_content(
            model=self.model_name,
            contents=[
                self.prompt,
                types.Part.from_bytes(data=image.data, mime_type=image.mime_type),
            ],
        )
        return resp.text or ""

    async def extract(self, image: NormalizedImage) -> str:
        """
        Return Gemini's raw text for one flyer image.

        Raises:
            ExtractionError: non-rate-limit failure, or rate limiting that
                outlasted limits.max_retries retries.
        """
        max_retries = self.limits.max_retries
        for attempt in range(max_retries + 1):
            try:
                return await self._generate(image)
            except Exception as e:
                if not is_rate_limit_error(e):
                    raise ExtractionError(f"Gemini error: {e}", attempts=attempt + 1) from e
                if attempt == max_retries:
                    raise ExtractionError(
                        f"Rate limited after {attempt + 1} attempts: {e}",
                        retryable=True, attempts=attempt + 1,
                    ) from e

                wait = parse_retry_delay(str(e), self.limits.retry_wait)
                logger.warning(
                    f"Rate limited. Retrying in {wait:.0f}s (attempt {attempt + 1}/{max_retries})",
                    extra={"wait_seconds": wait, "attempt": attempt + 1},
                )
                await self._sleep(wait)

        raise ExtractionError("unreachable")
