"""Google Gemini provider via the google-genai SDK."""

from fastapi import HTTPException
from google import genai
from google.genai import errors as genai_errors

from ghardaar.config.settings import get_settings
from ghardaar.providers.base import DescriptionProvider


class GeminiProvider(DescriptionProvider):
    """Generates text with a Gemini model using an API key."""

    required_setting = "gemini_api_key"

    def __init__(self):
        self._client: genai.Client | None = None

    def _get_client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=get_settings().gemini_api_key)
        return self._client

    async def generate(self, prompt: str) -> str:
        settings = get_settings()
        try:
            response = await self._get_client().aio.models.generate_content(
                model=settings.gemini_model,
                contents=prompt,
            )
        except genai_errors.APIError as e:
            if e.code == 429:
                raise HTTPException(status_code=429, detail="Gemini rate limit exceeded")
            raise HTTPException(status_code=502, detail=f"Gemini error: {e}")

        text = response.text or ""
        if not text:
            raise HTTPException(status_code=502, detail="Gemini returned an empty response")
        return text

    async def close(self) -> None:
        self._client = None
