"""
分类器客户端。

调用链: circuit.check → 请求 (json_schema, 被拒则降级 json_object) → parse → validate
整个请求失败重试, 延迟 base_delay × 2^attempt。重试耗尽 → 单条失败, 不影响同组其他通话。
"""
from __future__ import annotations
import asyncio
import time

from call_tagging.common.enums import ResponseMode
from call_tagging.common.exceptions import (
    CallTaggingError, ClassificationError, LLMCircuitOpenError, ProviderError,
    SchemaRejectedError,
)
from call_tagging.llm_adapter.client.base import BaseLLMClient, LLMResponse
from call_tagging.llm_adapter.parser.response_parser import ResponseParser
from call_tagging.llm_adapter.prompt.engine import PromptEngine
from call_tagging.llm_adapter.prompt.schema import build_response_schema
from call_tagging.llm_adapter.resilience.circuit_breaker import CircuitBreaker
from call_tagging.pipeline.ir import (
    ClassifiedCall, FailedCall, GroupOutcome, StructuredResult, WorkItem,
)
from call_tagging.pipeline.validator import validate_response
from call_tagging.pipeline.vocabulary import TagVocabulary
import structlog

logger = structlog.get_logger()


class ClassifierClient:
    def __init__(
        self,
        client: BaseLLMClient,
        prompt_engine: PromptEngine | None = None,
        parser: ResponseParser | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        use_schema: bool = True,
        max_retries: int = 3,
        base_delay: float = 1.0,
        temperature: float = 0.2,
        max_tokens: int = 4096,
        sleep=asyncio.sleep,
    ) -> None:
        self._client = client
        self._prompt = prompt_engine or PromptEngine()
        self._parser = parser or ResponseParser()
        self._circuit = circuit_breaker or CircuitBreaker()
        self._use_schema = use_schema
        self._max_retries = max(1, max_retries)
        self._base_delay = base_delay
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._sleep = sleep
        self._schema = build_response_schema()

    @property
    def model_name(self) -> str:
        return self._client.model_id

    @property
    def circuit(self) -> CircuitBreaker:
        return self._circuit

    async def aclose(self) -> None:
        await self._client.aclose()

    def use_vocabulary(self, vocabulary: TagVocabulary) -> None:
        """按当前词表刷新 response schema 的 enum。每个 pass 开始时调用。"""
        self._schema = build_response_schema(vocabulary)

    async def classify(self, item: WorkItem, prompt: str) -> StructuredResult:
        messages = self._prompt.build_messages(prompt, item.to_payload())
        attempt = 0

        while True:
            self._circuit.check()
            try:
                resp = await self._request(messages, call_id=item.id)
                data = self._parser.parse_object(resp.content)
                return validate_response(data, item)
            except ProviderError as e:
                self._circuit.record_failure()
                last_error = e
            except ClassificationError as e:
                last_error = e

            attempt += 1
            if attempt >= self._max_retries:
                raise last_error
            delay = self._base_delay * (2 ** (attempt - 1))
            logger.warning("classify_retry",
                           call_id=item.id, attempt=attempt,
                           delay_s=delay, error_code=last_error.code,
                           error=str(last_error))
            await self._sleep(delay)

    async def classify_group(self, items: list[WorkItem], prompt: str) -> GroupOutcome:
        """同一 prompt 的通话并发分类, 全部结束才返回 (无 fail-fast)。"""

        async def classify_one(item: WorkItem) -> ClassifiedCall:
            start = time.monotonic()
            result = await self.classify(item, prompt)
            return ClassifiedCall(
                call_id=item.id,
                result=result,
                processing_time_ms=int((time.monotonic() - start) * 1000),
                model_used=self.model_name,
                call_timestamp=item.call_timestamp,
            )

        results = await asyncio.gather(
            *[classify_one(item) for item in items],
            return_exceptions=True,
        )

        outcome = GroupOutcome()
        for item, r in zip(items, results):
            if isinstance(r, ClassifiedCall):
                outcome.successful.append(r)
            elif isinstance(r, CallTaggingError):
                logger.error("classify_failed",
                             call_id=item.id, error_code=r.code, error=str(r))
                outcome.failed.append(FailedCall(call_id=item.id, error=str(r), error_code=r.code))
            elif isinstance(r, Exception):
                logger.error("classify_failed_unexpected",
                             call_id=item.id, error=repr(r))
                outcome.failed.append(FailedCall(call_id=item.id, error=repr(r), error_code="UNEXPECTED"))
            else:
                raise r

        return outcome

    async def _request(self, messages: list[dict], call_id: int) -> LLMResponse:
        if self._use_schema:
            try:
                return await self._complete(
                    messages, self._prompt.response_format(ResponseMode.JSON_SCHEMA, self._schema))
            except SchemaRejectedError as e:
                logger.warning("schema_fallback", call_id=call_id,
                               model=self.model_name, error=str(e))
        return await self._complete(
            messages, self._prompt.response_format(ResponseMode.JSON_OBJECT))

    async def _complete(self, messages: list[dict], response_format: dict) -> LLMResponse:
        resp = await self._client.complete(
            messages=messages,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            response_format=response_format,
        )
        self._circuit.record_success()
        logger.debug("classifier_response",
                     model=resp.model,
                     tokens_in=resp.usage.input_tokens,
                     tokens_out=resp.usage.output_tokens,
                     cached=resp.usage.cached_tokens,
                     latency_ms=round(resp.latency_ms, 1))
        return resp


def is_circuit_failure(failed: FailedCall) -> bool:
    return failed.error_code == LLMCircuitOpenError.code
