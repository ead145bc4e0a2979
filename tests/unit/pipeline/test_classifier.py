"""ClassifierClient 测试: 伪造 LLM 客户端, 无网络。"""
import asyncio

import orjson
import pytest

from call_tagging.common.exceptions import (
    LLMCircuitOpenError, ProviderError, SchemaInvalidError, SchemaRejectedError,
)
from call_tagging.llm_adapter.client.base import BaseLLMClient, LLMResponse
from call_tagging.llm_adapter.resilience.circuit_breaker import CircuitBreaker, CircuitState
from call_tagging.pipeline.classifier import ClassifierClient, is_circuit_failure
from call_tagging.pipeline.ir import WorkItem


class ScriptedLLM(BaseLLMClient):
    """handler(payload, response_format) → str 或抛异常。"""

    def __init__(self, handler):
        self._handler = handler
        self.calls: list[dict] = []

    async def complete(self, messages, temperature=0.2, max_tokens=4096, response_format=None):
        payload = orjson.loads(messages[1]["content"].split("\n\n", 1)[1])
        self.calls.append({"payload": payload, "response_format": response_format})
        return LLMResponse(content=self._handler(payload, response_format), model="fake/model")

    @property
    def model_id(self):
        return "fake/model"

    @property
    def provider(self):
        return "fake"


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay):
        self.delays.append(delay)


def _classifier(handler, **kwargs) -> tuple[ClassifierClient, ScriptedLLM, RecordingSleep]:
    llm = ScriptedLLM(handler)
    sleep = RecordingSleep()
    kwargs.setdefault("base_delay", 1.0)
    return ClassifierClient(llm, sleep=sleep, **kwargs), llm, sleep


def _items(*ids) -> list[WorkItem]:
    return [WorkItem(id=i, campaign_id="C1", caller_id=f"EXT{i}", transcript="hi") for i in ids]


@pytest.mark.asyncio
async def test_classify_success(model_output):
    clf, llm, sleep = _classifier(lambda p, f: orjson.dumps(model_output()).decode())
    result = await clf.classify(_items(1)[0], "PROMPT")
    assert result.primary_value(1) == "QUALIFIED_APPOINTMENT_SET"
    assert len(llm.calls) == 1
    assert llm.calls[0]["response_format"]["type"] == "json_schema"
    assert llm.calls[0]["payload"]["callerId"] == "EXT1"
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_group_failure_isolated(model_output):
    """同组中一条校验失败, 其余两条照常成功。"""

    def handler(payload, fmt):
        if payload["callerId"] == "EXT2":
            return orjson.dumps(model_output(tier1={})).decode()
        return orjson.dumps(model_output(callerId=payload["callerId"])).decode()

    clf, llm, sleep = _classifier(handler, max_retries=3)
    outcome = await clf.classify_group(_items(1, 2, 3), "PROMPT")

    assert sorted(c.call_id for c in outcome.successful) == [1, 3]
    assert [f.call_id for f in outcome.failed] == [2]
    assert outcome.failed[0].error_code == SchemaInvalidError.code
    # 2 → 3 次尝试, 1/3 各 1 次
    assert len(llm.calls) == 5
    assert sleep.delays == [1.0, 2.0]
    assert all(c.model_used == "fake/model" for c in outcome.successful)


@pytest.mark.asyncio
async def test_validation_failure_does_not_trip_circuit():
    breaker = CircuitBreaker(failure_threshold=1)
    clf, _, _ = _classifier(lambda p, f: "no json here", circuit_breaker=breaker, max_retries=2)
    outcome = await clf.classify_group(_items(1), "PROMPT")
    assert outcome.failed[0].error_code == "PARSE_ERROR"
    assert breaker.state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_schema_fallback_same_attempt(model_output):
    def handler(payload, fmt):
        if fmt["type"] == "json_schema":
            raise SchemaRejectedError("json_schema unsupported", status_code=400)
        return orjson.dumps(model_output()).decode()

    clf, llm, sleep = _classifier(handler)
    result = await clf.classify(_items(1)[0], "PROMPT")
    assert result.primary_value(5) == "LIKELY_BILLABLE"
    assert [c["response_format"]["type"] for c in llm.calls] == ["json_schema", "json_object"]
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_schema_disabled_uses_json_object(model_output):
    clf, llm, _ = _classifier(lambda p, f: orjson.dumps(model_output()).decode(), use_schema=False)
    await clf.classify(_items(1)[0], "PROMPT")
    assert llm.calls[0]["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
async def test_retry_then_success(model_output):
    attempts = {"n": 0}

    def handler(payload, fmt):
        attempts["n"] += 1
        if attempts["n"] < 3:
            raise ProviderError("HTTP 503", status_code=503)
        return orjson.dumps(model_output()).decode()

    clf, _, sleep = _classifier(handler, max_retries=3, base_delay=0.5)
    result = await clf.classify(_items(1)[0], "PROMPT")
    assert result.confidence_score == 0.92
    assert sleep.delays == [0.5, 1.0]


@pytest.mark.asyncio
async def test_retries_exhausted_raises_last_error():
    def handler(payload, fmt):
        raise ProviderError("HTTP 500", status_code=500)

    clf, llm, sleep = _classifier(handler, max_retries=2)
    with pytest.raises(ProviderError, match="500"):
        await clf.classify(_items(1)[0], "PROMPT")
    assert len(llm.calls) == 2
    assert sleep.delays == [1.0]


@pytest.mark.asyncio
async def test_zero_retries_still_makes_one_attempt():
    def handler(payload, fmt):
        return "{}"

    clf, llm, sleep = _classifier(handler, max_retries=0)
    with pytest.raises(SchemaInvalidError, match="tier1"):
        await clf.classify(_items(1)[0], "PROMPT")
    assert len(llm.calls) == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_open_circuit_reported_as_circuit_failure(model_output):
    breaker = CircuitBreaker(failure_threshold=1, open_timeout=9999)
    breaker.record_failure()
    clf, llm, _ = _classifier(lambda p, f: orjson.dumps(model_output()).decode(),
                              circuit_breaker=breaker)

    with pytest.raises(LLMCircuitOpenError):
        await clf.classify(_items(1)[0], "PROMPT")

    outcome = await clf.classify_group(_items(1, 2), "PROMPT")
    assert outcome.successful == []
    assert all(is_circuit_failure(f) for f in outcome.failed)
    assert llm.calls == []


@pytest.mark.asyncio
async def test_provider_failures_trip_circuit():
    breaker = CircuitBreaker(failure_threshold=2, open_timeout=9999)

    def handler(payload, fmt):
        raise ProviderError("HTTP 502", status_code=502)

    clf, _, _ = _classifier(handler, circuit_breaker=breaker, max_retries=3)
    with pytest.raises(LLMCircuitOpenError):
        await clf.classify(_items(1)[0], "PROMPT")
    assert breaker.state == CircuitState.OPEN


@pytest.mark.asyncio
async def test_use_vocabulary_constrains_schema(vocabulary, model_output):
    clf, llm, _ = _classifier(lambda p, f: orjson.dumps(model_output()).decode())
    clf.use_vocabulary(vocabulary)
    await clf.classify(_items(1)[0], "PROMPT")
    schema = llm.calls[0]["response_format"]["json_schema"]["schema"]
    assert "WASHER" in schema["properties"]["tier4"]["properties"]["value"]["enum"]


class YieldingLLM(ScriptedLLM):
    """请求前让出一次事件循环, 模拟组内请求同时在途。"""

    async def complete(self, messages, temperature=0.2, max_tokens=4096, response_format=None):
        await asyncio.sleep(0)
        return await super().complete(messages, temperature, max_tokens, response_format)


@pytest.mark.asyncio
async def test_half_open_group_sends_only_trial_requests(model_output):
    clock = [1000.0]
    breaker = CircuitBreaker(failure_threshold=1, success_threshold=2, open_timeout=30,
                             clock=lambda: clock[0])
    breaker.record_failure()
    clock[0] += 31

    llm = YieldingLLM(lambda p, f: orjson.dumps(model_output(callerId=p["callerId"])).decode())
    clf = ClassifierClient(llm, circuit_breaker=breaker, sleep=RecordingSleep())
    outcome = await clf.classify_group(_items(1, 2, 3, 4, 5), "PROMPT")

    assert len(llm.calls) == 2
    assert sorted(c.call_id for c in outcome.successful) == [1, 2]
    assert sorted(f.call_id for f in outcome.failed) == [3, 4, 5]
    assert all(is_circuit_failure(f) for f in outcome.failed)
    assert breaker.state == CircuitState.CLOSED
