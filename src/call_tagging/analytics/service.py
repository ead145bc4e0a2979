"""
分类结果查询 (只读)。

tier 值通过 call_tags ⋈ tag_definitions 还原 (按 tier_number 过滤),
不依赖 JSONB 运算符, PostgreSQL / SQLite 均可执行。
"""
from __future__ import annotations
from datetime import datetime

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from call_tagging.common.enums import DISPUTE_RANK, PRIORITY_RANK, DisputeRecommendation, Tier
from call_tagging.common.exceptions import CallNotFoundError, UnknownTierError
from call_tagging.common.models import TIER_COLUMNS, CallAnalysis, CallTag, TagDefinition
from call_tagging.pipeline.ir import TIER_NUMBERS, EncodedTier
from call_tagging.pipeline.vocabulary import TagVocabulary

DEFINITELY_NOT_BILLABLE = "DEFINITELY_NOT_BILLABLE"
LIKELY_BILLABLE = "LIKELY_BILLABLE"


def tier_value(tier: int):
    """相关子查询: 某通话在单选 tier 上的 tag_value。"""
    ct, td = aliased(CallTag), aliased(TagDefinition)
    return (
        select(td.tag_value)
        .join(ct, ct.tag_id == td.id)
        .where(ct.call_id == CallAnalysis.call_id, td.tier_number == int(tier))
        .correlate(CallAnalysis)
        .order_by(td.id)
        .limit(1)
        .scalar_subquery()
    )


def has_tag(tag_value: str):
    ct, td = aliased(CallTag), aliased(TagDefinition)
    return (
        select(ct.call_id)
        .join(td, td.id == ct.tag_id)
        .where(ct.call_id == CallAnalysis.call_id, td.tag_value == tag_value)
        .correlate(CallAnalysis)
        .exists()
    )


def _summary_columns():
    return (
        CallAnalysis.call_id,
        CallAnalysis.external_call_id,
        tier_value(Tier.PRIMARY_OUTCOME).label("tier1_value"),
        tier_value(Tier.BILLING_INDICATOR).label("tier5_value"),
        CallAnalysis.dispute_recommendation,
        CallAnalysis.dispute_recommendation_reason,
        CallAnalysis.call_summary,
        CallAnalysis.confidence_score,
        CallAnalysis.current_revenue,
        CallAnalysis.current_billed_status,
        CallAnalysis.processed_at,
    )


class AnalyticsService:

    async def get_call(self, db: AsyncSession, call_id: int) -> dict:
        """单通话分类结果, tier 解码为 tag 名。"""
        row = await db.get(CallAnalysis, call_id)
        if row is None:
            raise CallNotFoundError(f"No analysis for call {call_id}")
        vocabulary = await TagVocabulary.load(db)

        tiers = {}
        for n in TIER_NUMBERS:
            encoded = EncodedTier.from_document(n, getattr(row, TIER_COLUMNS[n]))
            names = [vocabulary.name_for(i) or str(i) for i in encoded.tag_ids]
            tiers[f"tier{n}"] = {
                "mode": str(encoded.mode),
                "values": names,
                "reasons": {
                    vocabulary.name_for(i) or str(i): reason
                    for i, reason in encoded.reasons.items()
                },
            }

        tags = (await db.execute(
            select(TagDefinition.tag_value, TagDefinition.tier_number,
                   TagDefinition.priority, CallTag.confidence)
            .join(CallTag, CallTag.tag_id == TagDefinition.id)
            .where(CallTag.call_id == call_id)
            .order_by(TagDefinition.tier_number, TagDefinition.id)
        )).all()

        return {
            "call_id": row.call_id,
            "external_call_id": row.external_call_id,
            "call_timestamp": row.call_timestamp,
            **tiers,
            "confidence_score": row.confidence_score,
            "dispute_recommendation": row.dispute_recommendation,
            "dispute_recommendation_reason": row.dispute_recommendation_reason,
            "call_summary": row.call_summary,
            "extracted_customer_info": row.extracted_customer_info,
            "system_duplicate": row.system_duplicate,
            "current_revenue": row.current_revenue,
            "current_billed_status": row.current_billed_status,
            "processing_time_ms": row.processing_time_ms,
            "model_used": row.model_used,
            "processed_at": row.processed_at,
            "tags": [
                {"tag": t.tag_value, "tier": t.tier_number,
                 "priority": t.priority, "confidence": t.confidence}
                for t in tags
            ],
        }

    async def calls_by_tag(
        self, db: AsyncSession, tier: int, tag_value: str, limit: int = 100,
    ) -> list[dict]:
        if tier not in TIER_NUMBERS:
            raise UnknownTierError(f"Invalid tier number: {tier}. Must be 1-10.")
        tag = (await db.execute(
            select(TagDefinition).where(TagDefinition.tag_value == tag_value)
        )).scalar_one_or_none()
        if tag is None or tag.tier_number != tier:
            return []

        rows = (await db.execute(
            select(*_summary_columns())
            .join(CallTag, CallTag.call_id == CallAnalysis.call_id)
            .where(CallTag.tag_id == tag.id)
            .order_by(CallAnalysis.processed_at.desc(), CallAnalysis.call_id.desc())
            .limit(limit)
        )).mappings().all()
        return [dict(r) for r in rows]

    async def high_priority(self, db: AsyncSession, limit: int = 50) -> list[dict]:
        """争议建议 REVIEW / STRONG, 或计费指示为确定不可计费。STRONG 优先。"""
        rank = case(
            {str(k): v for k, v in DISPUTE_RANK.items()},
            value=CallAnalysis.dispute_recommendation, else_=3,
        )
        rows = (await db.execute(
            select(*_summary_columns())
            .where(or_(
                CallAnalysis.dispute_recommendation.in_(
                    [DisputeRecommendation.REVIEW.value, DisputeRecommendation.STRONG.value]),
                has_tag(DEFINITELY_NOT_BILLABLE),
            ))
            .order_by(rank, CallAnalysis.processed_at.desc(), CallAnalysis.call_id.desc())
            .limit(limit)
        )).mappings().all()
        return [dict(r) for r in rows]

    async def billing_discrepancies(self, db: AsyncSession, limit: int = 50) -> list[dict]:
        """模型计费判断与上游计费状态不一致的通话。"""
        rows = (await db.execute(
            select(*_summary_columns())
            .where(or_(
                and_(has_tag(LIKELY_BILLABLE),
                     CallAnalysis.current_billed_status == False,  # noqa: E712
                     CallAnalysis.current_revenue == 0),
                and_(has_tag(DEFINITELY_NOT_BILLABLE),
                     CallAnalysis.current_billed_status == True,  # noqa: E712
                     CallAnalysis.current_revenue > 0),
            ))
            .order_by(CallAnalysis.processed_at.desc(), CallAnalysis.call_id.desc())
            .limit(limit)
        )).mappings().all()
        return [dict(r) for r in rows]

    async def report(self, db: AsyncSession, start: datetime, end: datetime) -> dict:
        """时间段汇总: 总量, tier1/4/5 分布, 争议分布, 平均置信度。"""
        base = (
            select(
                CallAnalysis.call_id,
                tier_value(Tier.PRIMARY_OUTCOME).label("tier1"),
                tier_value(Tier.APPLIANCE_TYPE).label("tier4"),
                tier_value(Tier.BILLING_INDICATOR).label("tier5"),
                CallAnalysis.dispute_recommendation,
                CallAnalysis.confidence_score,
                CallAnalysis.current_revenue,
            )
            .where(CallAnalysis.processed_at.between(start, end))
            .subquery("base")
        )

        totals = (await db.execute(
            select(func.count(), func.avg(base.c.confidence_score))
        )).one()

        async def breakdown(column, with_revenue: bool = False) -> list[dict]:
            cols = [column.label("value"), func.count().label("count")]
            if with_revenue:
                cols.append(func.avg(base.c.current_revenue).label("avg_revenue"))
            rows = (await db.execute(
                select(*cols).group_by(column).order_by(func.count().desc(), column)
            )).mappings().all()
            return [dict(r) for r in rows]

        return {
            "period": {"start": start, "end": end},
            "total_calls": totals[0] or 0,
            "avg_confidence": float(totals[1]) if totals[1] is not None else None,
            "tier1_breakdown": await breakdown(base.c.tier1),
            "tier4_breakdown": await breakdown(base.c.tier4),
            "tier5_breakdown": await breakdown(base.c.tier5, with_revenue=True),
            "dispute_breakdown": await breakdown(base.c.dispute_recommendation),
        }

    async def tag_stats(self, db: AsyncSession) -> list[dict]:
        """每个标签的使用次数与平均置信度, 按优先级 + 使用量排序。"""
        usage = func.count(CallTag.call_id)
        priority_rank = case(
            {str(k): v for k, v in PRIORITY_RANK.items()},
            value=TagDefinition.priority, else_=5,
        )
        rows = (await db.execute(
            select(
                TagDefinition.id.label("tag_id"),
                TagDefinition.tag_value,
                TagDefinition.tag_name,
                TagDefinition.tier_number,
                TagDefinition.priority,
                usage.label("usage_count"),
                func.avg(CallTag.confidence).label("avg_confidence"),
            )
            .outerjoin(CallTag, CallTag.tag_id == TagDefinition.id)
            .group_by(TagDefinition.id, TagDefinition.tag_value, TagDefinition.tag_name,
                      TagDefinition.tier_number, TagDefinition.priority)
            .order_by(priority_rank, usage.desc(), TagDefinition.id)
        )).mappings().all()
        return [dict(r) for r in rows]
