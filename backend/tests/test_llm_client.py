import json

import httpx
import pytest

from news_analyzer.exceptions import InvalidResponse, LLMTimeout, LLMUnavailable, RateLimited
from news_analyzer.schemas.config import LLMConfig
from news_analyzer.services.llm_client import LLMClient, render_prompt


OPENAI_CONFIG = LLMConfig(
    provider="openai",
    endpoint="https://llm.test/v1/chat/completions",
    api_key="sk-test",
    model="test-model",
)

OLLAMA_CONFIG = LLMConfig(provider="ollama", endpoint="http://ollama.test:11434/", model="qwen")

RESULT_JSON = json.dumps({"summary": "Rates rise", "industry_type": "Finance", "confidence": 0.8})


def make_client(handler, config=OPENAI_CONFIG):
    return LLMClient(config_provider=lambda: config, transport=httpx.MockTransport(handler))


def chat_response(message):
    return httpx.Response(200, json={"choices": [{"message": message}]})


def test_render_prompt():
    assert render_prompt("T: {title}\n{content}", "body", "Headline") == "T: Headline\nbody"
    assert render_prompt("Classify this article.  ", "body") == "Classify this article.\n\nbody"


@pytest.mark.asyncio
async def test_chat_completion_success():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["payload"] = json.loads(request.content)
        return chat_response({"content": RESULT_JSON})

    result = await make_client(handler).classify("Article body", "Classify: {content}")

    assert result.summary == "Rates rise"
    assert result.industry_type == "Finance"
    assert seen["url"] == OPENAI_CONFIG.endpoint
    assert seen["auth"] == "Bearer sk-test"
    assert seen["payload"]["model"] == "test-model"
    assert seen["payload"]["messages"][0]["content"] == "Classify: Article body"


@pytest.mark.asyncio
async def test_reasoning_content_fallback():
    def handler(request):
        return chat_response({"content": "", "reasoning_content": RESULT_JSON})

    result = await make_client(handler).classify("body", "{content}")
    assert result.summary == "Rates rise"


@pytest.mark.asyncio
async def test_content_is_truncated():
    seen = {}

    def handler(request):
        seen["prompt"] = json.loads(request.content)["messages"][0]["content"]
        return chat_response({"content": RESULT_JSON})

    client = make_client(handler)
    client.max_content_chars = 10
    await client.classify("x" * 50, "{content}")

    assert seen["prompt"] == "x" * 10


@pytest.mark.asyncio
async def test_rate_limited():
    def handler(request):
        return httpx.Response(429, headers={"Retry-After": "7"}, text="slow down")

    with pytest.raises(RateLimited) as exc_info:
        await make_client(handler).classify("body", "{content}")
    assert exc_info.value.retry_after == 7.0


@pytest.mark.asyncio
async def test_server_error_is_unavailable():
    def handler(request):
        return httpx.Response(500, text="boom")

    with pytest.raises(LLMUnavailable):
        await make_client(handler).classify("body", "{content}")


@pytest.mark.asyncio
async def test_http_timeout():
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(LLMTimeout):
        await make_client(handler).classify("body", "{content}")


@pytest.mark.asyncio
async def test_connection_error_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(LLMUnavailable):
        await make_client(handler).classify("body", "{content}")


@pytest.mark.asyncio
async def test_unparseable_output():
    def handler(request):
        return chat_response({"content": "Sorry, I can't help with that."})

    with pytest.raises(InvalidResponse):
        await make_client(handler).classify("body", "{content}")


@pytest.mark.asyncio
async def test_non_object_json_is_invalid_response():
    def handler(request):
        return httpx.Response(200, json=[1, 2])

    with pytest.raises(InvalidResponse):
        await make_client(handler).classify("body", "{content}")

    with pytest.raises(InvalidResponse):
        await make_client(handler, OLLAMA_CONFIG).classify("body", "{content}")


@pytest.mark.asyncio
async def test_missing_api_key():
    config = OPENAI_CONFIG.model_copy(update={"api_key": None})

    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(LLMUnavailable):
        await make_client(handler, config).classify("body", "{content}")


@pytest.mark.asyncio
async def test_ollama_generate():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["payload"] = json.loads(request.content)
        return httpx.Response(200, json={"response": RESULT_JSON, "done": True})

    result = await make_client(handler, OLLAMA_CONFIG).classify("body", "{content}")

    assert result.summary == "Rates rise"
    assert seen["url"] == "http://ollama.test:11434/api/generate"
    assert seen["payload"]["format"] == "json"
    assert seen["payload"]["stream"] is False


@pytest.mark.asyncio
async def test_check_health():
    def handler(request):
        assert request.url.path == "/v1/models"
        return httpx.Response(200, json={"data": []})

    assert await make_client(handler).check_health() == "healthy"

    unconfigured = make_client(handler, OPENAI_CONFIG.model_copy(update={"api_key": None}))
    assert await unconfigured.check_health() == "unconfigured"

    def failing(request):
        raise httpx.ConnectError("refused", request=request)

    assert await make_client(failing, OLLAMA_CONFIG).check_health() == "unavailable"


@pytest.mark.asyncio
async def test_connection_test_uses_short_request():
    seen = {}

    def handler(request):
        seen["payload"] = json.loads(request.content)
        seen["timeout"] = request.extensions["timeout"]
        return chat_response({"content": " OK "})

    # The configuration under test wins over the active one
    active = OPENAI_CONFIG.model_copy(update={"model": "active-model"})
    outcome = await make_client(handler, active).test_connection(OPENAI_CONFIG)

    assert outcome["ok"] is True
    assert outcome["message"] == "OK"
    assert outcome["latency_ms"] >= 0
    assert seen["payload"]["model"] == "test-model"
    assert seen["payload"]["temperature"] == 0.1
    assert seen["payload"]["max_tokens"] == 50
    assert seen["timeout"]["read"] == 30.0


@pytest.mark.asyncio
async def test_connection_test_reports_failures():
    def handler(request):
        return httpx.Response(401, json={"error": "bad key"})

    outcome = await make_client(handler).test_connection()

    assert outcome["ok"] is False
    assert "401" in outcome["message"]
    assert outcome["latency_ms"] is None

    missing_key = make_client(handler, OPENAI_CONFIG.model_copy(update={"api_key": None}))
    assert (await missing_key.test_connection())["ok"] is False
