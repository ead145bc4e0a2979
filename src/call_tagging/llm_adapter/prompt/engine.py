"""
Prompt 组装。

- system: campaign prompt 全文, 标记 cache_control (同组请求共享前缀缓存)
- user:   固定前缀 + 通话结构化 JSON
- response_format: json_schema (strict) 或 json_object
"""
from __future__ import annotations
import orjson

from call_tagging.common.enums import ResponseMode

USER_PROMPT_PREFIX = "Analyze this call:\n\n"
SCHEMA_NAME = "call_analysis"


class PromptEngine:
    def __init__(self, cache_system_prompt: bool = True) -> None:
        self._cache = cache_system_prompt

    def build_messages(self, system_prompt: str, payload: dict) -> list[dict]:
        system_part: dict = {"type": "text", "text": system_prompt}
        if self._cache:
            system_part["cache_control"] = {"type": "ephemeral"}
        return [
            {"role": "system", "content": [system_part]},
            {"role": "user", "content": self.render_user_prompt(payload)},
        ]

    @staticmethod
    def render_user_prompt(payload: dict) -> str:
        return USER_PROMPT_PREFIX + orjson.dumps(payload, default=str).decode()

    @staticmethod
    def response_format(mode: ResponseMode, schema: dict | None = None) -> dict:
        if mode == ResponseMode.JSON_SCHEMA and schema is not None:
            return {
                "type": "json_schema",
                "json_schema": {"name": SCHEMA_NAME, "strict": True, "schema": schema},
            }
        return {"type": "json_object"}
