import time
import httpx
from typing import Any, Callable, Dict, Optional
from loguru import logger

from news_analyzer.config import settings
from news_analyzer.domain import ClassificationResult
from news_analyzer.exceptions import InvalidResponse, LLMError, LLMTimeout, LLMUnavailable, RateLimited
from news_analyzer.schemas.config import LLMConfig
from news_analyzer.services.llm_parser import parse_classification
from news_analyzer.utils.llm_config import get_llm_config

TEST_PROMPT = "Reply with the single word OK."
TEST_TIMEOUT = 30.0


def render_prompt(template: str, article_text: str, title: str = "") -> str:
    """
    Fill a prompt template

    `{content}` receives the article text and `{title}` its title. A template
    without `{content}` gets the text appended at the end.
    """
    prompt = template.replace("{title}", title)
    if "{content}" in prompt:
        return prompt.replace("{content}", article_text)
    return f"{prompt.rstrip()}\n\n{article_text}"


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class LLMClient:
    """Classification calls against an OpenAI-compatible or Ollama endpoint"""

    def __init__(
        self,
        config_provider: Callable[[], LLMConfig] = get_llm_config,
        timeout: float = settings.LLM_HTTP_TIMEOUT,
        max_content_chars: int = settings.LLM_MAX_CONTENT_CHARS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config_provider = config_provider
        self.timeout = timeout
        self.max_content_chars = max_content_chars
        self._transport = transport

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout or self.timeout, transport=self._transport)

    async def classify(
        self,
        article_text: str,
        prompt_template: str,
        config: Optional[LLMConfig] = None,
        title: str = "",
    ) -> ClassificationResult:
        """
        Classify one article

        Raises:
            RateLimited: provider answered 429
            LLMTimeout: the HTTP call timed out
            LLMUnavailable: transport failure or unexpected status
            InvalidResponse: the output could not be parsed
        """
        config = config or self.config_provider()
        prompt = render_prompt(prompt_template, article_text[:self.max_content_chars], title)

        if config.provider == "ollama":
            content = await self._generate_ollama(prompt, config)
        else:
            content = await self._chat_completion(prompt, config)

        return parse_classification(content)

    async def _post(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        try:
            async with self._client(timeout) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise LLMTimeout(f"LLM request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise LLMUnavailable(f"LLM request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimited("LLM provider rate limit hit", retry_after=_retry_after(response))
        if response.status_code != 200:
            logger.error(f"LLM API error: {response.status_code} - {response.text[:500]}")
            raise LLMUnavailable(f"LLM API returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise InvalidResponse(f"LLM API returned non-JSON body: {e}") from e
        if not isinstance(data, dict):
            raise InvalidResponse(f"LLM API returned a JSON {type(data).__name__}, expected an object")
        return data

    async def _chat_completion(self, prompt: str, config: LLMConfig, timeout: Optional[float] = None) -> str:
        if not config.api_key:
            raise LLMUnavailable("LLM API key is not configured")

        payload = {
            "model": config.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }
        headers = {"Authorization": f"Bearer {config.api_key}"}
        data = await self._post(config.endpoint, payload, headers, timeout)

        message = {}
        choices = data.get("choices") or []
        if choices and isinstance(choices[0], dict):
            message = choices[0].get("message") or {}

        # Some providers put the answer in reasoning_content
        content = message.get("content") or message.get("reasoning_content") or data.get("content") or ""
        if not content:
            raise InvalidResponse("LLM returned empty content")
        return content

    async def _generate_ollama(self, prompt: str, config: LLMConfig, timeout: Optional[float] = None) -> str:
        payload = {
            "model": config.model,
            "prompt": prompt,
            "stream": False,
            "format": "json",
            "options": {
                "temperature": config.temperature,
                "num_predict": config.max_tokens,
            },
        }
        data = await self._post(f"{config.endpoint.rstrip('/')}/api/generate", payload, timeout=timeout)

        content = data.get("response", "")
        if not content:
            raise InvalidResponse("Ollama returned empty response")
        return content

    async def check_health(self) -> str:
        """'healthy', 'error', 'unavailable' or 'unconfigured'"""
        config = self.config_provider()
        if config.provider == "openai" and not config.api_key:
            return "unconfigured"

        if config.provider == "ollama":
            url = f"{config.endpoint.rstrip('/')}/api/tags"
            headers = None
        else:
            url = config.endpoint.rsplit("/chat/completions", 1)[0] + "/models"
            headers = {"Authorization": f"Bearer {config.api_key}"}

        try:
            async with self._client(timeout=5.0) as client:
                response = await client.get(url, headers=headers)
                return "healthy" if response.status_code == 200 else "error"
        except Exception as e:
            logger.error(f"LLM health check failed: {e}")
            return "unavailable"

    async def test_connection(self, config: Optional[LLMConfig] = None) -> Dict[str, Any]:
        """
        Send a short prompt with the given (or active) configuration

        Returns {ok, message, latency_ms}; failures are reported, not raised.
        """
        config = (config or self.config_provider()).model_copy(update={"temperature": 0.1, "max_tokens": 50})
        started = time.monotonic()
        try:
            if config.provider == "ollama":
                reply = await self._generate_ollama(TEST_PROMPT, config, timeout=TEST_TIMEOUT)
            else:
                reply = await self._chat_completion(TEST_PROMPT, config, timeout=TEST_TIMEOUT)
        except LLMError as e:
            logger.warning(f"LLM connection test against {config.endpoint} failed: {e}")
            return {"ok": False, "message": str(e), "latency_ms": None}

        latency_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"LLM connection test against {config.endpoint} succeeded in {latency_ms} ms")
        return {"ok": True, "message": reply.strip()[:200], "latency_ms": latency_ms}
