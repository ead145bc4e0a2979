"""
Chat completion 客户端抽象。

实现方只负责一次 HTTP 往返: 非 2xx / 网络错误统一抛 ProviderError,
重试 / 熔断 / 解析由 pipeline.classifier 负责。
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    cached_tokens: int = 0  # 命中 prompt 缓存的输入 token

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class LLMResponse:
    content: str = ""  # 模型原始文本, 未解析
    model: str = ""
    usage: TokenUsage = field(default_factory=TokenUsage)
    finish_reason: str = ""
    latency_ms: float = 0.0
    raw_response: dict | None = None


class BaseLLMClient(ABC):

    @abstractmethod
    async def complete(
        self,
        messages: list[dict],
        temperature: float = 0.2,
        max_tokens: int = 4096,
        response_format: dict | None = None,
    ) -> LLMResponse:
        ...

    async def aclose(self) -> None:
        """释放连接池。默认无资源。"""

    @property
    @abstractmethod
    def model_id(self) -> str:
        ...

    @property
    @abstractmethod
    def provider(self) -> str:
        ...
