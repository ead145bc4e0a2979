"""
响应解析器 (4 级 fallback)。

Level 1: 直接 JSON parse
Level 2: 提取 markdown code block 内的 JSON
Level 3: 正则提取最外层 {...}
Level 4: 失败, 返回 raw text

json_schema 模式下 Level 1 即成功; json_object 降级模式下模型偶尔包 ```json。
"""
from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Any
import orjson
import structlog

from call_tagging.common.exceptions import ParseError

logger = structlog.get_logger()

_CODE_BLOCK_PATTERNS = (
    re.compile(r"```json\s*\n?(.*?)\n?\s*```", re.DOTALL),
    re.compile(r"```\s*\n?(.*?)\n?\s*```", re.DOTALL),
)
_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")


@dataclass
class ParseResult:
    success: bool = False
    data: Any = None
    raw_text: str = ""
    parse_level: int = 0
    error: str | None = None


class ResponseParser:
    def parse(self, text: str) -> ParseResult:
        if not text or not text.strip():
            return ParseResult(raw_text=text or "", error="empty_response")

        data = self._loads(text.strip())
        if data is not None:
            return ParseResult(success=True, data=data, raw_text=text, parse_level=1)

        for pattern in _CODE_BLOCK_PATTERNS:
            match = pattern.search(text)
            if match:
                data = self._loads(match.group(1).strip())
                if data is not None:
                    return ParseResult(success=True, data=data, raw_text=text, parse_level=2)

        match = _OBJECT_PATTERN.search(text)
        if match:
            data = self._loads(match.group(0))
            if data is not None:
                return ParseResult(success=True, data=data, raw_text=text, parse_level=3)

        logger.warning("parse_fallback_raw", text_preview=text[:200])
        return ParseResult(raw_text=text, parse_level=4, error="all_parse_methods_failed")

    def parse_object(self, text: str) -> dict:
        """解析为 JSON object, 否则抛 ParseError。"""
        result = self.parse(text)
        if not result.success:
            raise ParseError(
                f"Failed to parse AI response as JSON: {(text or '')[:200]}")
        if not isinstance(result.data, dict):
            raise ParseError(
                f"AI response is JSON but not an object: {type(result.data).__name__}")
        if result.parse_level > 1:
            logger.info("parse_recovered", parse_level=result.parse_level)
        return result.data

    @staticmethod
    def _loads(text: str) -> Any:
        try:
            return orjson.loads(text)
        except orjson.JSONDecodeError:
            return None
