"""
SQLAlchemy ORM 模型: 7 张表。

tier 数据列统一格式: {"value_ids": [42], "reasons": {"42": "..."}}
"""
from __future__ import annotations
from datetime import datetime
from sqlalchemy import (
    Boolean, DateTime, Float, ForeignKey, Integer, String, Text,
    Index, func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _empty_tier() -> dict:
    return {"value_ids": [], "reasons": {}}


# ───────────────────────── 上游数据 ─────────────────────────

class Campaign(Base):
    __tablename__ = "campaigns"

    campaign_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    campaign_name: Mapped[str | None] = mapped_column(String(200))
    ai_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class CallRecord(Base):
    """通话记录 (Work Item)。由上游 ingestion 写入, 本服务只改 ai_* / processed_at。"""
    __tablename__ = "call_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    campaign_id: Mapped[str | None] = mapped_column(ForeignKey("campaigns.campaign_id"))
    caller_id: Mapped[str | None] = mapped_column(String(200))  # 外部通话 id
    transcript: Mapped[str | None] = mapped_column(Text)
    call_duration: Mapped[int | None] = mapped_column(Integer)  # 秒
    caller_phone: Mapped[str | None] = mapped_column(String(32))
    call_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # 客户字段
    first_name: Mapped[str | None] = mapped_column(Text)
    last_name: Mapped[str | None] = mapped_column(Text)
    address: Mapped[str | None] = mapped_column(Text)
    street_number: Mapped[str | None] = mapped_column(Text)
    street_name: Mapped[str | None] = mapped_column(Text)
    street_type: Mapped[str | None] = mapped_column(Text)
    city: Mapped[str | None] = mapped_column(Text)
    state: Mapped[str | None] = mapped_column(Text)
    g_zip: Mapped[str | None] = mapped_column(String(16))

    # 计费
    revenue: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    billed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hung_up: Mapped[str | None] = mapped_column(String(32))  # Caller | Target
    is_duplicate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # 分类状态
    ai_processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    ai_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ai_last_error: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_calls_pending", "ai_processed", "id"),
        Index("idx_calls_campaign", "campaign_id"),
    )


# ───────────────────────── 词表 / Prompt ─────────────────────────

class TagDefinition(Base):
    """标签词表。id 稳定不复用; tag_value 为模型输出的符号名。"""
    __tablename__ = "tag_definitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tag_value: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    tag_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    tier_number: Mapped[int] = mapped_column(Integer, nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="Medium")
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_tags_tier", "tier_number"),
    )


class CampaignPrompt(Base):
    """按 campaign 的 system prompt 版本。每个 campaign 至多一条 active。"""
    __tablename__ = "campaign_prompts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    campaign_id: Mapped[str | None] = mapped_column(
        ForeignKey("campaigns.campaign_id", ondelete="CASCADE"))
    campaign_name: Mapped[str | None] = mapped_column(String(200))
    prompt_version: Mapped[str] = mapped_column(String(20), nullable=False, default="V5")
    system_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_prompts_campaign_active", "campaign_id", "is_active"),
    )


# ───────────────────────── 分类结果 ─────────────────────────

class CallAnalysis(Base):
    """分类结果 (每通话一行, 整行 upsert)。"""
    __tablename__ = "call_analysis"

    call_id: Mapped[int] = mapped_column(
        ForeignKey("call_records.id", ondelete="CASCADE"), primary_key=True)
    external_call_id: Mapped[str | None] = mapped_column(String(200))
    call_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    tier1_data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=_empty_tier)
    tier2_data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=_empty_tier)
    tier3_data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=_empty_tier)
    tier4_data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=_empty_tier)
    tier5_data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=_empty_tier)
    tier6_data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=_empty_tier)
    tier7_data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=_empty_tier)
    tier8_data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=_empty_tier)
    tier9_data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=_empty_tier)
    tier10_data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=_empty_tier)

    confidence_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    dispute_recommendation: Mapped[str] = mapped_column(String(20), nullable=False, default="NONE")
    dispute_recommendation_reason: Mapped[str | None] = mapped_column(Text)
    call_summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    extracted_customer_info: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    system_duplicate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    current_revenue: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    current_billed_status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    processing_time_ms: Mapped[int | None] = mapped_column(Integer)
    model_used: Mapped[str | None] = mapped_column(String(100))
    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_analysis_dispute", "dispute_recommendation"),
        Index("idx_analysis_processed", "processed_at"),
    )


class CallAnalysisRaw(Base):
    """原始模型响应 (debug blob), 独立表避免主表膨胀。"""
    __tablename__ = "call_analysis_raw"

    call_id: Mapped[int] = mapped_column(
        ForeignKey("call_analysis.call_id", ondelete="CASCADE"), primary_key=True)
    raw_ai_response: Mapped[dict] = mapped_column(JSONB, nullable=False)
    stored_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class CallTag(Base):
    """通话-标签 关联行。存在 ⇔ tag_id 出现在某个 tier 的 value_ids 中。"""
    __tablename__ = "call_tags"

    call_id: Mapped[int] = mapped_column(
        ForeignKey("call_records.id", ondelete="CASCADE"), primary_key=True)
    tag_id: Mapped[int] = mapped_column(
        ForeignKey("tag_definitions.id", ondelete="CASCADE"), primary_key=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.85)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_call_tags_tag", "tag_id"),
    )


TIER_COLUMNS: dict[int, str] = {n: f"tier{n}_data" for n in range(1, 11)}
