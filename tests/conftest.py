"""全局 pytest fixtures: SQLite 内存库 (JSONB 适配) + 标准词表 / campaign 种子。"""
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy import types
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from call_tagging.common.models import Base, Campaign, CampaignPrompt, CallRecord, TagDefinition
from call_tagging.pipeline.vocabulary import TagInfo, TagVocabulary

# (id, tag_value, tier, priority)
TAGS = [
    (1, "QUALIFIED_APPOINTMENT_SET", 1, "Highest"),
    (2, "SOFT_LEAD_INTERESTED", 1, "High"),
    (3, "IMMEDIATE_HANGUP", 1, "Medium"),
    (10, "WRONG_NUMBER", 2, "High"),
    (11, "CUSTOMER_DISCONNECTED", 2, "Medium"),
    (20, "REPAIR_REQUEST", 3, "Medium"),
    (21, "PRICE_INQUIRY", 3, "Lower"),
    (30, "WASHER", 4, "Medium"),
    (31, "REFRIGERATOR", 4, "Medium"),
    (32, "UNKNOWN_APPLIANCE", 4, "Lower"),
    (40, "LIKELY_BILLABLE", 5, "High"),
    (41, "DEFINITELY_NOT_BILLABLE", 5, "Highest"),
    (42, "QUESTIONABLE_BILLING", 5, "High"),
    (50, "SENIOR_CUSTOMER", 6, "Lower"),
    (60, "LANGUAGE_BARRIER", 9, "Medium"),
]

PROMPT_C1 = "You are a call classifier for appliance repair (C1)."


def _sqlite_compat():
    """PostgreSQL → SQLite 类型适配。"""
    for table in Base.metadata.tables.values():
        for column in table.columns:
            if isinstance(column.type, JSONB):
                column.type = types.JSON()


@pytest.fixture
def vocabulary() -> TagVocabulary:
    return TagVocabulary(TagInfo(id=i, name=v, tier=t, priority=p) for i, v, t, p in TAGS)


@pytest_asyncio.fixture
async def engine():
    _sqlite_compat()
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seeded(session_factory):
    """词表 + campaign C1 (有 active prompt) / C2 (无 prompt) / C3 (ai 关闭)。"""
    async with session_factory() as s:
        async with s.begin():
            s.add_all([
                TagDefinition(id=i, tag_value=v, tag_name=v.replace("_", " ").title(),
                              tier_number=t, priority=p)
                for i, v, t, p in TAGS
            ])
            s.add_all([
                Campaign(campaign_id="C1", campaign_name="Appliance Repair", ai_enabled=True),
                Campaign(campaign_id="C2", campaign_name="No Prompt Yet", ai_enabled=True),
                Campaign(campaign_id="C3", campaign_name="Disabled", ai_enabled=False),
            ])
            s.add(CampaignPrompt(campaign_id="C1", campaign_name="Appliance Repair",
                                 system_prompt=PROMPT_C1, is_active=True))
    return session_factory


@pytest.fixture
def add_calls(session_factory):
    """add_calls((id, campaign_id), ...) / add_calls(dict(...), ...)"""

    async def _add(*rows, **defaults):
        async with session_factory() as s:
            async with s.begin():
                for row in rows:
                    if isinstance(row, tuple):
                        row = {"id": row[0], "campaign_id": row[1]}
                    fields = {
                        "caller_id": f"EXT{row['id']}",
                        "transcript": f"A - Hello\nB - My washer broke ({row['id']})",
                        "call_duration": 120,
                        "call_timestamp": datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
                        "revenue": 25.0,
                        "billed": True,
                        **defaults,
                        **row,
                    }
                    s.add(CallRecord(**fields))

    return _add


@pytest.fixture
def model_output():
    """构造一份合法的模型输出 (dict)。"""

    def _make(**overrides) -> dict:
        data = {
            "callerId": "EXT1",
            "tier1": {"value": "QUALIFIED_APPOINTMENT_SET", "reason": "Booked Tuesday"},
            "tier2": {"values": [], "reasons": {}},
            "tier3": {"values": ["REPAIR_REQUEST"], "reasons": {"REPAIR_REQUEST": "Washer broken"}},
            "tier4": {"value": "WASHER", "reason": "Mentions washer"},
            "tier5": {"value": "LIKELY_BILLABLE", "reason": "Over 90s with booking"},
            "tier6": {"values": [], "reasons": {}},
            "tier7": {"values": [], "reasons": {}},
            "tier8": {"values": [], "reasons": {}},
            "tier9": {"values": [], "reasons": {}},
            "tier10": {"values": [], "reasons": {}},
            "confidence_score": 0.92,
            "dispute_recommendation": "NONE",
            "dispute_recommendation_reason": "",
            "call_summary": "Customer booked washer repair.",
            "extracted_customer_info": {"firstName": "Ann"},
            "system_duplicate": False,
            "current_revenue": 25.0,
            "current_billed_status": True,
        }
        data.update(overrides)
        return data

    return _make


class _UnreachableSession:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, ConnectionRefusedError("connection refused"))


@pytest.fixture
def unreachable_session_factory():
    """每次 execute 都抛 OperationalError 的 session 工厂 (数据库不可达)。"""
    return _UnreachableSession
