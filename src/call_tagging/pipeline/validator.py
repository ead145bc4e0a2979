"""
模型响应校验 → StructuredResult。

- tier1 (主结果) / tier5 (计费指示) 必须有值, 否则 SchemaInvalidError
- tier4 缺失 → UNKNOWN_APPLIANCE
- 多选 tier 缺失 → 空; 单个字符串 → [字符串]
- 可选字段给默认值 (confidence 0.5, dispute NONE, summary "")
"""
from __future__ import annotations
from typing import Any

from call_tagging.common.enums import (
    DisputeRecommendation, MANDATORY_TIERS, SelectionMode, Tier, selection_mode,
)
from call_tagging.common.exceptions import SchemaInvalidError
from call_tagging.pipeline.ir import TIER_NUMBERS, StructuredResult, TierSelection, WorkItem

DEFAULT_CONFIDENCE = 0.5
UNKNOWN_APPLIANCE = "UNKNOWN_APPLIANCE"
UNKNOWN_APPLIANCE_REASON = "Could not determine from transcript"


def _as_names(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str) and v.strip()]
    return []


def _as_reasons(value: Any) -> dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {k: v for k, v in value.items() if isinstance(k, str) and isinstance(v, str) and v}


def _parse_tier(tier: int, raw: Any) -> TierSelection:
    mode = selection_mode(tier)
    if not isinstance(raw, dict):
        return TierSelection.empty(tier)

    if mode == SelectionMode.SINGLE:
        names = _as_names(raw.get("value")) or _as_names(raw.get("values"))
        reasons = _as_reasons(raw.get("reasons"))
        reason = raw.get("reason")
        if names and isinstance(reason, str) and reason:
            reasons.setdefault(names[0], reason)
        return TierSelection(tier=tier, mode=mode, tag_names=names, reasons=reasons)

    names = _as_names(raw.get("values")) or _as_names(raw.get("value"))
    return TierSelection(tier=tier, mode=mode, tag_names=names,
                         reasons=_as_reasons(raw.get("reasons")))


def _as_float(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)


def validate_response(data: Any, item: WorkItem | None = None) -> StructuredResult:
    if not isinstance(data, dict):
        raise SchemaInvalidError("Invalid AI response: not a JSON object")

    tiers = {n: _parse_tier(n, data.get(f"tier{n}")) for n in TIER_NUMBERS}

    errors = []
    for tier in MANDATORY_TIERS:
        if not tiers[tier].tag_names:
            errors.append(f"Missing tier{int(tier)}.value")
    if errors:
        raise SchemaInvalidError(f"Invalid AI response: {', '.join(errors)}")

    if not tiers[Tier.APPLIANCE_TYPE].tag_names:
        tiers[Tier.APPLIANCE_TYPE] = TierSelection(
            tier=Tier.APPLIANCE_TYPE, mode=SelectionMode.SINGLE,
            tag_names=[UNKNOWN_APPLIANCE],
            reasons={UNKNOWN_APPLIANCE: UNKNOWN_APPLIANCE_REASON},
        )

    confidence = min(max(_as_float(data.get("confidence_score"), DEFAULT_CONFIDENCE), 0.0), 1.0)

    try:
        dispute = DisputeRecommendation(data.get("dispute_recommendation"))
    except ValueError:
        dispute = DisputeRecommendation.NONE
    dispute_reason = data.get("dispute_recommendation_reason")
    if not isinstance(dispute_reason, str) or not dispute_reason:
        dispute_reason = None

    summary = data.get("call_summary")
    customer_info = data.get("extracted_customer_info")
    duplicate = data.get("system_duplicate")
    billed = data.get("current_billed_status")
    caller_id = data.get("callerId")

    return StructuredResult(
        tiers=tiers,
        confidence_score=confidence,
        dispute_recommendation=dispute,
        dispute_recommendation_reason=dispute_reason,
        call_summary=summary if isinstance(summary, str) else "",
        extracted_customer_info=customer_info if isinstance(customer_info, dict) else {},
        system_duplicate=duplicate if isinstance(duplicate, bool) else bool(item and item.is_duplicate),
        current_revenue=_as_float(data.get("current_revenue"), item.revenue if item else 0.0),
        current_billed_status=billed if isinstance(billed, bool) else bool(item and item.billed),
        external_call_id=caller_id if isinstance(caller_id, str) and caller_id else (item.caller_id if item else None),
        raw=data,
    )
