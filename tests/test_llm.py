"""Tests for the language model clients and provider selection."""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from outagex.config import Settings
from outagex.errors import ExternalServiceError
from outagex.reasoning_agent import BedrockClient, GroqClient, build_language_model
from outagex.reasoning_agent.llm import _extract_text_from_converse_response
from outagex.reasoning_agent.prompts import SYSTEM_PROMPT


@pytest.mark.asyncio
async def test_groq_client_sends_chat_completion():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": '{"description": "x"}'}}]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        client = GroqClient("gsk-test", model="llama-test", base_url="https://groq.test/v1/", client=http)
        text = await client.complete("diagnose this", temperature=0.4, max_tokens=800)

    assert text == '{"description": "x"}'
    assert captured["url"] == "https://groq.test/v1/chat/completions"
    body = captured["body"]
    assert body["model"] == "llama-test"
    assert body["temperature"] == 0.4
    assert body["max_tokens"] == 800
    assert body["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
    assert body["messages"][1] == {"role": "user", "content": "diagnose this"}


@pytest.mark.asyncio
async def test_groq_status_error_keeps_status_code():
    transport = httpx.MockTransport(lambda request: httpx.Response(429, text="rate limited"))
    async with httpx.AsyncClient(transport=transport) as http:
        with pytest.raises(ExternalServiceError) as exc:
            await GroqClient("gsk-test", client=http).complete("x")
    assert exc.value.status_code == 429
    assert "rate limited" in str(exc.value)


@pytest.mark.asyncio
async def test_groq_unexpected_shape():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"choices": []}))
    async with httpx.AsyncClient(transport=transport) as http:
        with pytest.raises(ExternalServiceError):
            await GroqClient("gsk-test", client=http).complete("x")


def test_extract_text_from_converse_response():
    response = {"output": {"message": {"content": [{"text": "Hello "}, {"text": "world"}]}}}
    assert _extract_text_from_converse_response(response) == "Hello world"
    assert _extract_text_from_converse_response({}) == ""


@pytest.mark.asyncio
async def test_bedrock_client_calls_converse(settings):
    runtime = MagicMock()
    runtime.converse.return_value = {"output": {"message": {"content": [{"text": "ok"}]}}}
    client = BedrockClient(model_id="us.amazon.nova-2-lite-v1:0", client=runtime, settings=settings)

    assert await client.complete("prompt", temperature=0.2, max_tokens=100) == "ok"
    kwargs = runtime.converse.call_args.kwargs
    assert kwargs["modelId"] == "us.amazon.nova-2-lite-v1:0"
    assert kwargs["inferenceConfig"] == {"maxTokens": 100, "temperature": 0.2}


@pytest.mark.asyncio
async def test_bedrock_failure_is_external_service_error(settings):
    runtime = MagicMock()
    runtime.converse.side_effect = RuntimeError("ThrottlingException")
    with pytest.raises(ExternalServiceError) as exc:
        await BedrockClient(client=runtime, settings=settings).complete("x")
    assert exc.value.service == "bedrock"


@patch("outagex.reasoning_agent.llm._get_bedrock_client")
def test_build_language_model_by_provider(mock_get_client):
    assert build_language_model(Settings(_env_file=None, llm_provider="stub")) is None
    assert build_language_model(Settings(_env_file=None, llm_provider="groq", groq_api_key="")) is None
    assert isinstance(build_language_model(Settings(_env_file=None, llm_provider="groq", groq_api_key="k")), GroqClient)
    assert isinstance(build_language_model(Settings(_env_file=None, llm_provider="bedrock")), BedrockClient)
    assert build_language_model(Settings(_env_file=None, llm_provider="openai")) is None
    mock_get_client.assert_not_called()
