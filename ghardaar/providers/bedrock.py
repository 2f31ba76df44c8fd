"""AWS Bedrock Converse API provider."""

import asyncio

from fastapi import HTTPException

from ghardaar.config.settings import get_settings
from ghardaar.providers.base import DescriptionProvider


class BedrockProvider(DescriptionProvider):
    """Sends the prompt to a Bedrock model via the Converse API."""

    required_setting = "bedrock_model_id"

    def __init__(self):
        self._client = None

    def _get_client(self):
        """Lazy-init boto3 client (avoids import when not needed)."""
        if self._client is None:
            import boto3

            self._client = boto3.client("bedrock-runtime", region_name=get_settings().aws_region)
        return self._client

    def _call_converse(self, **kwargs) -> dict:
        """Synchronous Converse API call (run via asyncio.to_thread)."""
        return self._get_client().converse(**kwargs)

    def _handle_bedrock_error(self, e: Exception):
        """Map boto3 exceptions to HTTPExceptions."""
        if isinstance(getattr(e, "response", None), dict):
            error_code = e.response.get("Error", {}).get("Code", "")
        else:
            error_code = type(e).__name__

        if error_code == "ThrottlingException":
            raise HTTPException(status_code=429, detail="Bedrock rate limit exceeded")
        elif error_code == "ModelNotReadyException":
            raise HTTPException(status_code=503, detail="Bedrock model not ready")
        elif error_code == "AccessDeniedException":
            raise HTTPException(status_code=403, detail="Bedrock access denied -- check IAM permissions")
        else:
            raise HTTPException(status_code=502, detail=f"Bedrock error: {e}")

    async def generate(self, prompt: str) -> str:
        model_id = get_settings().bedrock_model_id
        kwargs = {
            "modelId": model_id,
            "messages": [{"role": "user", "content": [{"text": prompt}]}],
        }

        try:
            response = await asyncio.to_thread(self._call_converse, **kwargs)
        except Exception as e:
            self._handle_bedrock_error(e)

        blocks = response.get("output", {}).get("message", {}).get("content", [])
        return "".join(block.get("text", "") for block in blocks)

    async def close(self) -> None:
        # boto3 clients don't need explicit cleanup
        self._client = None
