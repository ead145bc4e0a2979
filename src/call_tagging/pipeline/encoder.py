"""
Tier 编码器: 模型输出的符号名 → 稳定 tag id。

- 未知名: 丢弃 + warning, 不抛异常 (词表漂移只降级)
- tier 不符: 丢弃 + warning
- reasons: name 键 → id 键
- 单选 tier: 至多保留第一个 id
"""
from __future__ import annotations

from call_tagging.common.enums import SelectionMode, selection_mode
from call_tagging.pipeline.ir import (
    TIER_NUMBERS, ClassifiedCall, EncodedClassification, EncodedTier,
    StructuredResult, TagAssignment, TierSelection,
)
from call_tagging.pipeline.vocabulary import TagVocabulary
import structlog

logger = structlog.get_logger()

DEFAULT_TAG_CONFIDENCE = 0.85
UNKNOWN_PLACEHOLDER = "UNKNOWN"  # 单选 tier 的 "无值"


class TierEncoder:
    def encode(
        self,
        result: StructuredResult,
        vocabulary: TagVocabulary,
        call_id: int = 0,
    ) -> EncodedClassification:
        tiers = {
            n: self.encode_tier(result.tier(n), vocabulary, call_id)
            for n in TIER_NUMBERS
        }
        return EncodedClassification(
            call_id=call_id,
            tiers=tiers,
            confidence_score=result.confidence_score,
            dispute_recommendation=str(result.dispute_recommendation),
            dispute_recommendation_reason=result.dispute_recommendation_reason,
            call_summary=result.call_summary,
            extracted_customer_info=dict(result.extracted_customer_info),
            system_duplicate=result.system_duplicate,
            current_revenue=result.current_revenue,
            current_billed_status=result.current_billed_status,
            external_call_id=result.external_call_id,
            raw=result.raw,
        )

    def encode_call(self, call: ClassifiedCall, vocabulary: TagVocabulary) -> EncodedClassification:
        encoded = self.encode(call.result, vocabulary, call_id=call.call_id)
        encoded.processing_time_ms = call.processing_time_ms
        encoded.model_used = call.model_used
        encoded.call_timestamp = call.call_timestamp
        return encoded

    def encode_tier(
        self,
        selection: TierSelection,
        vocabulary: TagVocabulary,
        call_id: int = 0,
    ) -> EncodedTier:
        tier = selection.tier
        mode = selection_mode(tier)
        encoded = EncodedTier(tier=tier, mode=mode)

        for name in selection.tag_names:
            if mode == SelectionMode.SINGLE and name == UNKNOWN_PLACEHOLDER:
                continue
            tag = vocabulary.by_name(name)
            if tag is None:
                logger.warning("unknown_tag_dropped",
                               call_id=call_id, tier=tier, tag=name)
                continue
            if tag.tier != tier:
                logger.warning("tag_tier_mismatch_dropped",
                               call_id=call_id, tier=tier, tag=name,
                               defined_tier=tag.tier)
                continue
            if tag.id in encoded.tag_ids:
                continue
            encoded.tag_ids.append(tag.id)
            reason = selection.reasons.get(name)
            if reason:
                encoded.reasons[tag.id] = reason

        if mode == SelectionMode.SINGLE and len(encoded.tag_ids) > 1:
            logger.warning("single_select_truncated",
                           call_id=call_id, tier=tier, kept=encoded.tag_ids[0],
                           dropped=encoded.tag_ids[1:])
            kept = encoded.tag_ids[0]
            encoded.tag_ids = [kept]
            encoded.reasons = {kept: encoded.reasons[kept]} if kept in encoded.reasons else {}

        return encoded

    @staticmethod
    def decode(
        encoded: EncodedClassification,
        vocabulary: TagVocabulary,
    ) -> dict[int, list[str]]:
        """id → name。词表中已不存在的 id 跳过。"""
        decoded: dict[int, list[str]] = {}
        for n in TIER_NUMBERS:
            tier = encoded.tiers.get(n)
            names: list[str] = []
            for tag_id in tier.tag_ids if tier else []:
                name = vocabulary.name_for(tag_id)
                if name is not None:
                    names.append(name)
            decoded[n] = names
        return decoded

    @staticmethod
    def tag_assignments(
        encoded: EncodedClassification,
        confidence: float | None = None,
    ) -> list[TagAssignment]:
        conf = encoded.confidence_score if confidence is None else confidence
        if conf is None:
            conf = DEFAULT_TAG_CONFIDENCE
        return [
            TagAssignment(call_id=encoded.call_id, tag_id=tag_id, confidence=conf)
            for tag_id in encoded.all_tag_ids()
        ]
