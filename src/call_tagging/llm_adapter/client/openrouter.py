"""
OpenRouter LLM 客户端 (OpenAI 兼容 chat/completions)。

- Bearer 鉴权
- response_format: json_schema (strict) / json_object
- 400 + "json_schema" → SchemaRejectedError, 由调用方降级
"""
from __future__ import annotations
import time
import httpx
import structlog

from call_tagging.common.exceptions import ProviderError, SchemaRejectedError
from call_tagging.llm_adapter.client.base import BaseLLMClient, LLMResponse, TokenUsage

logger = structlog.get_logger()

OPENROUTER_API_BASE = "https://openrouter.ai/api/v1"
APP_TITLE = "Call Tagging Service"


class OpenRouterClient(BaseLLMClient):
    """OpenRouter 客户端。"""

    def __init__(
        self,
        api_key: str = "",
        model: str = "anthropic/claude-3.5-haiku",
        base_url: str = OPENROUTER_API_BASE,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def complete(
        self,
        messages: list[dict],
        temperature: float = 0.2,
        max_tokens: int = 4096,
        response_format: dict | None = None,
    ) -> LLMResponse:
        body: dict = {
            "model": self._model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if response_format:
            body["response_format"] = response_format

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "X-Title": APP_TITLE,
        }

        start = time.monotonic()
        try:
            resp = await self._client.post(
                f"{self._base_url}/chat/completions", json=body, headers=headers)
        except httpx.HTTPError as e:
            raise ProviderError(f"OpenRouter transport error: {e!r}") from e
        latency = (time.monotonic() - start) * 1000

        if resp.status_code >= 400:
            text = resp.text
            schema_mode = (response_format or {}).get("type") == "json_schema"
            if schema_mode and resp.status_code == 400 and "json_schema" in text:
                raise SchemaRejectedError(
                    "Model does not support json_schema response format",
                    status_code=resp.status_code, body=text[:500])
            raise ProviderError(
                f"OpenRouter API error: {resp.status_code} - {text[:200]}",
                status_code=resp.status_code, body=text[:500])

        try:
            data = resp.json()
            choice = data["choices"][0]
            content = choice["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"Malformed OpenRouter envelope: {e!r}") from e

        usage = data.get("usage") or {}
        details = usage.get("prompt_tokens_details") or {}

        return LLMResponse(
            content=content,
            model=data.get("model") or self._model,
            usage=TokenUsage(
                input_tokens=usage.get("prompt_tokens") or 0,
                output_tokens=usage.get("completion_tokens") or 0,
                cached_tokens=details.get("cached_tokens") or 0,
            ),
            finish_reason=choice.get("finish_reason") or "",
            latency_ms=latency,
            raw_response=data,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def model_id(self) -> str:
        return self._model

    @property
    def provider(self) -> str:
        return "openrouter"
