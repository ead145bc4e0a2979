"""Pipeline 组件装配 (API 进程与脚本共用)。"""
from __future__ import annotations

from call_tagging.llm_adapter.client.base import BaseLLMClient
from call_tagging.llm_adapter.client.openrouter import OpenRouterClient
from call_tagging.llm_adapter.parser.response_parser import ResponseParser
from call_tagging.llm_adapter.prompt.engine import PromptEngine
from call_tagging.llm_adapter.resilience.circuit_breaker import CircuitBreaker
from call_tagging.pipeline.classifier import ClassifierClient
from call_tagging.pipeline.encoder import TierEncoder
from call_tagging.pipeline.orchestrator import BatchOrchestrator
from call_tagging.pipeline.selector import WorkSelector
from call_tagging.pipeline.writer import ResultWriter
from call_tagging.prompts.service import PromptResolver
from call_tagging.settings import Settings, settings as default_settings


def build_llm_client(s: Settings) -> OpenRouterClient:
    return OpenRouterClient(
        api_key=s.openrouter_api_key,
        model=s.openrouter_model,
        base_url=s.openrouter_base_url,
        timeout=s.llm_timeout_seconds,
    )


def build_orchestrator(
    session_factory,
    llm_client: BaseLLMClient | None = None,
    s: Settings | None = None,
) -> BatchOrchestrator:
    s = s or default_settings
    classifier = ClassifierClient(
        client=llm_client or build_llm_client(s),
        prompt_engine=PromptEngine(),
        parser=ResponseParser(),
        circuit_breaker=CircuitBreaker(),
        use_schema=s.llm_use_schema,
        max_retries=s.llm_max_retries,
        base_delay=s.llm_retry_base_delay,
        temperature=s.llm_temperature,
        max_tokens=s.llm_max_tokens,
    )
    return BatchOrchestrator(
        session_factory=session_factory,
        selector=WorkSelector(
            session_factory,
            classify_since=s.classify_since,
            max_attempts=s.classify_max_attempts,
        ),
        resolver=PromptResolver(session_factory),
        classifier=classifier,
        writer=ResultWriter(session_factory),
        encoder=TierEncoder(),
        batch_size=s.batch_size,
        ceiling=s.pass_ceiling,
        cooldown_seconds=s.round_cooldown_seconds,
    )
