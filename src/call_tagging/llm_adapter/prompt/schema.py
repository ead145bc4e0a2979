"""
结构化输出 JSON Schema。

单选 tier (1/4/5): {"value": str, "reason": str}
多选 tier:        {"values": [str], "reasons": {tag: str}}
词表可用时把每个 tier 的合法值写成 enum。
"""
from __future__ import annotations

from call_tagging.common.enums import SelectionMode, selection_mode
from call_tagging.pipeline.ir import TIER_NUMBERS
from call_tagging.pipeline.vocabulary import TagVocabulary

SCALAR_PROPERTIES: dict[str, dict] = {
    "callerId": {"type": "string"},
    "confidence_score": {"type": "number"},
    "dispute_recommendation": {"type": "string", "enum": ["NONE", "REVIEW", "STRONG"]},
    "dispute_recommendation_reason": {"type": "string"},
    "call_summary": {"type": "string"},
    "extracted_customer_info": {
        "type": "object",
        "additionalProperties": {"type": ["string", "null"]},
    },
    "system_duplicate": {"type": "boolean"},
    "current_revenue": {"type": "number"},
    "current_billed_status": {"type": "boolean"},
}


def _value_schema(names: list[str]) -> dict:
    schema: dict = {"type": "string"}
    if names:
        schema["enum"] = sorted(names)
    return schema


def tier_schema(tier: int, names: list[str] | None = None) -> dict:
    value = _value_schema(names or [])
    if selection_mode(tier) == SelectionMode.SINGLE:
        return {
            "type": "object",
            "required": ["value", "reason"],
            "additionalProperties": False,
            "properties": {"value": value, "reason": {"type": "string"}},
        }
    return {
        "type": "object",
        "required": ["values", "reasons"],
        "additionalProperties": False,
        "properties": {
            "values": {"type": "array", "items": value},
            "reasons": {"type": "object", "additionalProperties": {"type": "string"}},
        },
    }


def build_response_schema(vocabulary: TagVocabulary | None = None) -> dict:
    properties: dict[str, dict] = {"callerId": SCALAR_PROPERTIES["callerId"]}
    for n in TIER_NUMBERS:
        names = vocabulary.names_for_tier(n) if vocabulary else None
        properties[f"tier{n}"] = tier_schema(n, names)
    for key, value in SCALAR_PROPERTIES.items():
        properties.setdefault(key, value)
    return {
        "type": "object",
        "required": list(properties),
        "additionalProperties": False,
        "properties": properties,
    }
