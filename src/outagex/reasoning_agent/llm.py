"""Language model clients: Groq (OpenAI-compatible HTTP) and Amazon Bedrock Converse."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from outagex.config import Settings, get_settings
from outagex.errors import ExternalServiceError
from outagex.integrations.base import LanguageModelClient
from outagex.reasoning_agent.prompts import SYSTEM_PROMPT

logger = logging.getLogger(__name__)


class GroqClient(LanguageModelClient):
    """
    Calls Groq chat completions.

    Endpoint: POST {base_url}/chat/completions (OpenAI schema). Pass an
    ``httpx.AsyncClient`` to share a connection pool or to mock transport.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "llama-3.3-70b-versatile",
        base_url: str = "https://api.groq.com/openai/v1",
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._url = f"{base_url.rstrip('/')}/chat/completions"
        self._timeout = timeout
        self._client = client

    async def complete(self, prompt: str, *, temperature: float = 0.3, max_tokens: int = 1024) -> str:
        payload: dict[str, Any] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
            "max_tokens": max(1, min(int(max_tokens), 8192)),
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            if self._client is not None:
                response = await self._client.post(self._url, json=payload, headers=headers, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._url, json=payload, headers=headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                "groq", e.response.text[:500], status_code=e.response.status_code
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ExternalServiceError("groq", str(e)) from e

        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ExternalServiceError("groq", f"unexpected response shape: {str(data)[:200]}") from e


def _get_bedrock_client(settings: Settings):
    """Create Bedrock Runtime client with configured timeout and region."""
    import boto3
    from botocore.config import Config

    config = Config(read_timeout=settings.bedrock_read_timeout_seconds)
    kwargs = {"region_name": settings.aws_region, "config": config}
    if settings.aws_access_key_id and settings.aws_secret_access_key:
        kwargs["aws_access_key_id"] = settings.aws_access_key_id
        kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
    return boto3.client("bedrock-runtime", **kwargs)


def _extract_text_from_converse_response(response: dict[str, Any]) -> str:
    """Extract concatenated text from Bedrock Converse response (output.message.content)."""
    parts = []
    try:
        output = response.get("output") or {}
        message = output.get("message") or {}
        for block in message.get("content") or []:
            if block.get("text"):
                parts.append(block["text"])
    except (AttributeError, TypeError):
        pass
    return "".join(parts)


class BedrockClient(LanguageModelClient):
    """
    Amazon Nova (or any Converse-capable model) via the Bedrock Converse API.

    boto3 is synchronous; each call runs in a worker thread so the event
    loop is not blocked.
    """

    def __init__(self, model_id: str | None = None, client: Any = None, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._model_id = model_id or self._settings.bedrock_model_id
        self._client = client

    def _runtime(self):
        if self._client is None:
            self._client = _get_bedrock_client(self._settings)
        return self._client

    async def complete(self, prompt: str, *, temperature: float = 0.3, max_tokens: int = 1024) -> str:
        try:
            response = await asyncio.to_thread(
                self._runtime().converse,
                modelId=self._model_id,
                messages=[{"role": "user", "content": [{"text": prompt}]}],
                system=[{"text": SYSTEM_PROMPT}],
                inferenceConfig={"maxTokens": max_tokens, "temperature": temperature},
            )
        except Exception as e:  # noqa: BLE001
            raise ExternalServiceError("bedrock", str(e)) from e
        return _extract_text_from_converse_response(response)


def build_language_model(settings: Settings | None = None) -> LanguageModelClient | None:
    """Client for ``settings.llm_provider``; None selects the deterministic stub behavior."""
    settings = settings or get_settings()
    provider = settings.llm_provider.strip().lower()
    if provider == "groq":
        if not settings.groq_api_key:
            logger.warning("llm_provider is groq but GROQ_API_KEY is not set; using fallback responses")
            return None
        return GroqClient(
            api_key=settings.groq_api_key,
            model=settings.groq_model,
            base_url=settings.groq_base_url,
            timeout=settings.llm_timeout_seconds,
        )
    if provider == "bedrock":
        return BedrockClient(settings=settings)
    if provider != "stub":
        logger.warning("Unknown llm_provider %r; using fallback responses", settings.llm_provider)
    return None
