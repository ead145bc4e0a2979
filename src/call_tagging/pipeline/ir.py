"""
Pipeline 中间表示 (IR)。

- WorkItem: 待分类通话 (从 ORM 拷出, 脱离 session)
- TierSelection / StructuredResult: 分类器输出 (符号名)
- EncodedTier / EncodedClassification: 编码后 (稳定 tag id), 仅在存储边界序列化
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from call_tagging.common.enums import DisputeRecommendation, SelectionMode, selection_mode

TIER_NUMBERS: tuple[int, ...] = tuple(range(1, 11))

CUSTOMER_FIELDS: tuple[str, ...] = (
    "firstName", "lastName", "address", "street_number", "street_name",
    "street_type", "city", "state", "g_zip",
)


@dataclass
class WorkItem:
    """一条待分类通话。"""
    id: int
    campaign_id: str | None = None
    caller_id: str | None = None
    transcript: str = ""
    duration: int = 0
    caller_phone: str | None = None
    call_timestamp: datetime | None = None
    revenue: float = 0.0
    billed: bool = False
    hung_up: str | None = None
    is_duplicate: bool = False
    customer: dict[str, str | None] = field(default_factory=dict)

    @classmethod
    def from_record(cls, rec: Any) -> WorkItem:
        return cls(
            id=rec.id,
            campaign_id=rec.campaign_id,
            caller_id=rec.caller_id,
            transcript=rec.transcript or "",
            duration=rec.call_duration or 0,
            caller_phone=rec.caller_phone,
            call_timestamp=rec.call_timestamp,
            revenue=float(rec.revenue or 0),
            billed=bool(rec.billed),
            hung_up=rec.hung_up,
            is_duplicate=bool(rec.is_duplicate),
            customer={
                "firstName": rec.first_name,
                "lastName": rec.last_name,
                "address": rec.address,
                "street_number": rec.street_number,
                "street_name": rec.street_name,
                "street_type": rec.street_type,
                "city": rec.city,
                "state": rec.state,
                "g_zip": rec.g_zip,
            },
        )

    def to_payload(self) -> dict:
        """发给模型的结构化输入。"""
        payload = {
            "callerId": self.caller_id or f"ROW_{self.id}",
            "transcript": self.transcript,
            "callLengthInSeconds": int(self.duration or 0),
            "revenue": float(self.revenue or 0),
            "billed": self.billed or (self.revenue or 0) > 0,
            "hung_up": self.hung_up or "Unknown",
            "duplicate": self.is_duplicate,
        }
        for key in CUSTOMER_FIELDS:
            payload[key] = self.customer.get(key) or None
        return payload


# ─── 分类器输出 (符号名) ───

@dataclass
class TierSelection:
    tier: int
    mode: SelectionMode
    tag_names: list[str] = field(default_factory=list)
    reasons: dict[str, str] = field(default_factory=dict)  # tag name → reason

    @classmethod
    def empty(cls, tier: int) -> TierSelection:
        return cls(tier=tier, mode=selection_mode(tier))


@dataclass
class StructuredResult:
    tiers: dict[int, TierSelection] = field(default_factory=dict)
    confidence_score: float = 0.5
    dispute_recommendation: DisputeRecommendation = DisputeRecommendation.NONE
    dispute_recommendation_reason: str | None = None
    call_summary: str = ""
    extracted_customer_info: dict[str, Any] = field(default_factory=dict)
    system_duplicate: bool = False
    current_revenue: float = 0.0
    current_billed_status: bool = False
    external_call_id: str | None = None
    raw: dict = field(default_factory=dict)

    def tier(self, n: int) -> TierSelection:
        return self.tiers.get(n) or TierSelection.empty(n)

    def primary_value(self, n: int) -> str | None:
        names = self.tier(n).tag_names
        return names[0] if names else None


@dataclass
class ClassifiedCall:
    """单条分类成功。"""
    call_id: int
    result: StructuredResult
    processing_time_ms: int = 0
    model_used: str = ""
    call_timestamp: datetime | None = None


@dataclass
class FailedCall:
    """单条分类失败 (重试耗尽)。"""
    call_id: int
    error: str = ""
    error_code: str = "CLASSIFICATION_FAILED"


@dataclass
class GroupOutcome:
    successful: list[ClassifiedCall] = field(default_factory=list)
    failed: list[FailedCall] = field(default_factory=list)


# ─── 编码后 (稳定 id) ───

@dataclass
class EncodedTier:
    tier: int
    mode: SelectionMode
    tag_ids: list[int] = field(default_factory=list)
    reasons: dict[int, str] = field(default_factory=dict)  # tag id → reason

    def to_document(self) -> dict:
        return {
            "value_ids": list(self.tag_ids),
            "reasons": {str(k): v for k, v in self.reasons.items()},
        }

    @classmethod
    def from_document(cls, tier: int, doc: dict | None) -> EncodedTier:
        doc = doc or {}
        reasons: dict[int, str] = {}
        for k, v in (doc.get("reasons") or {}).items():
            try:
                reasons[int(k)] = v
            except (TypeError, ValueError):
                continue
        return cls(
            tier=tier,
            mode=selection_mode(tier),
            tag_ids=[int(i) for i in doc.get("value_ids") or []],
            reasons=reasons,
        )


@dataclass
class EncodedClassification:
    call_id: int
    tiers: dict[int, EncodedTier] = field(default_factory=dict)
    confidence_score: float = 0.5
    dispute_recommendation: str = DisputeRecommendation.NONE.value
    dispute_recommendation_reason: str | None = None
    call_summary: str = ""
    extracted_customer_info: dict[str, Any] = field(default_factory=dict)
    system_duplicate: bool = False
    current_revenue: float = 0.0
    current_billed_status: bool = False
    external_call_id: str | None = None
    call_timestamp: datetime | None = None
    processing_time_ms: int | None = None
    model_used: str | None = None
    raw: dict = field(default_factory=dict)

    def all_tag_ids(self) -> list[int]:
        """所有 tier 的 tag id (去重, 保序)。"""
        seen: dict[int, None] = {}
        for n in TIER_NUMBERS:
            t = self.tiers.get(n)
            if t:
                for tag_id in t.tag_ids:
                    seen.setdefault(tag_id, None)
        return list(seen)

    def to_row(self) -> dict:
        """→ call_analysis 整行 (不含 processed_at)。"""
        row: dict[str, Any] = {
            "call_id": self.call_id,
            "external_call_id": self.external_call_id,
            "call_timestamp": self.call_timestamp,
            "confidence_score": self.confidence_score,
            "dispute_recommendation": self.dispute_recommendation,
            "dispute_recommendation_reason": self.dispute_recommendation_reason,
            "call_summary": self.call_summary,
            "extracted_customer_info": self.extracted_customer_info,
            "system_duplicate": self.system_duplicate,
            "current_revenue": self.current_revenue,
            "current_billed_status": self.current_billed_status,
            "processing_time_ms": self.processing_time_ms,
            "model_used": self.model_used,
        }
        for n in TIER_NUMBERS:
            tier = self.tiers.get(n) or EncodedTier(tier=n, mode=selection_mode(n))
            row[f"tier{n}_data"] = tier.to_document()
        return row


@dataclass
class TagAssignment:
    call_id: int
    tag_id: int
    confidence: float = 0.85


@dataclass
class PassSummary:
    """一次 Pass 的统计。"""
    rounds: int = 0
    selected: int = 0
    persisted: int = 0
    classify_failed: int = 0
    persist_failed: int = 0
    skipped_no_prompt: int = 0
    stop_reason: str = ""
    elapsed_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "rounds": self.rounds,
            "selected": self.selected,
            "persisted": self.persisted,
            "classify_failed": self.classify_failed,
            "persist_failed": self.persist_failed,
            "skipped_no_prompt": self.skipped_no_prompt,
            "stop_reason": self.stop_reason,
            "elapsed_ms": self.elapsed_ms,
        }
