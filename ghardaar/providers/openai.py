"""OpenAI-compatible chat completions provider."""

import httpx
from fastapi import HTTPException

from ghardaar.config.settings import get_settings
from ghardaar.providers.base import DescriptionProvider


class OpenAIProvider(DescriptionProvider):
    """Sends the prompt as a single user message to /v1/chat/completions."""

    required_setting = "openai_api_key"

    def __init__(self):
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=10.0))
        return self._client

    async def generate(self, prompt: str) -> str:
        settings = get_settings()
        upstream_url = f"{settings.openai_base_url.rstrip('/')}/v1/chat/completions"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {settings.openai_api_key}",
        }
        body = {
            "model": settings.openai_model,
            "messages": [{"role": "user", "content": prompt}],
        }

        client = await self._get_client()
        try:
            response = await client.post(upstream_url, json=body, headers=headers)
        except httpx.ConnectError:
            raise HTTPException(status_code=502, detail="Cannot reach upstream provider")
        except httpx.TimeoutException:
            raise HTTPException(status_code=504, detail="Upstream provider timed out")
        except httpx.HTTPError as e:
            raise HTTPException(status_code=502, detail=f"Upstream error: {e}")

        if response.status_code != 200:
            raise HTTPException(
                status_code=502,
                detail=f"Upstream returned {response.status_code}: {response.text[:200]}",
            )

        choices = response.json().get("choices", [])
        if not choices:
            raise HTTPException(status_code=502, detail="Upstream returned no choices")
        return choices[0].get("message", {}).get("content", "") or ""

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
