"""Campaign prompt 存取测试。"""
import pytest
from sqlalchemy import select

from call_tagging.common.exceptions import PromptNotFoundError, SelectionError
from call_tagging.common.models import CampaignPrompt
from call_tagging.prompts.service import PromptAdmin, PromptResolver


@pytest.mark.asyncio
async def test_resolve_active_only(seeded, session_factory):
    prompts = await PromptResolver(session_factory).resolve_all()
    assert set(prompts) == {"C1"}
    assert prompts["C1"].startswith("You are a call classifier")


@pytest.mark.asyncio
async def test_resolve_prefers_newest_and_skips_blank(seeded, session_factory):
    async with session_factory() as s:
        async with s.begin():
            s.add_all([
                CampaignPrompt(campaign_id="C1", system_prompt="C1 v6", is_active=True),
                CampaignPrompt(campaign_id="C2", system_prompt="   ", is_active=True),
                CampaignPrompt(campaign_id="C3", system_prompt="retired", is_active=False),
            ])
    prompts = await PromptResolver(session_factory).resolve_all()
    assert prompts == {"C1": "C1 v6"}


@pytest.mark.asyncio
async def test_create_version_supersedes_active(seeded, db):
    admin = PromptAdmin()
    created = await admin.create_version(db, "C1", "new C1 prompt", notes="tighter tier5 rules",
                                         prompt_version="V6")
    await db.commit()

    assert created.is_active
    assert created.prompt_version == "V6"
    assert created.prompt_chars == len("new C1 prompt")
    assert created.system_prompt is None

    rows = (await db.execute(
        select(CampaignPrompt).where(CampaignPrompt.campaign_id == "C1")
        .order_by(CampaignPrompt.id))).scalars().all()
    assert [r.is_active for r in rows] == [False, True]


@pytest.mark.asyncio
async def test_new_version_is_resolved(seeded, session_factory):
    async with session_factory() as s:
        await PromptAdmin().create_version(s, "C2", "C2 prompt")
        await s.commit()
    prompts = await PromptResolver(session_factory).resolve_all()
    assert prompts["C2"] == "C2 prompt"


@pytest.mark.asyncio
async def test_list_and_get(seeded, db):
    admin = PromptAdmin()
    await admin.create_version(db, "C2", "C2 prompt")
    await db.commit()

    everything = await admin.list_prompts(db)
    assert [p.campaign_id for p in everything] == ["C1", "C2"]
    only_c2 = await admin.list_prompts(db, "C2")
    assert len(only_c2) == 1

    detail = await admin.get_prompt(db, only_c2[0].id)
    assert detail.system_prompt == "C2 prompt"


@pytest.mark.asyncio
async def test_update_meta_keeps_body(seeded, db):
    admin = PromptAdmin()
    [c1] = await admin.list_prompts(db, "C1")
    updated = await admin.update_meta(db, c1.id, notes="reviewed", campaign_name="Repairs")
    await db.commit()
    assert updated.notes == "reviewed"
    assert updated.campaign_name == "Repairs"
    assert updated.prompt_chars == c1.prompt_chars
    assert updated.is_active


@pytest.mark.asyncio
async def test_deactivate(seeded, db, session_factory):
    admin = PromptAdmin()
    [c1] = await admin.list_prompts(db, "C1")
    result = await admin.deactivate(db, c1.id)
    await db.commit()
    assert result.is_active is False
    assert await PromptResolver(session_factory).resolve_all() == {}


@pytest.mark.asyncio
async def test_missing_prompt(seeded, db):
    with pytest.raises(PromptNotFoundError):
        await PromptAdmin().get_prompt(db, 999)
    with pytest.raises(PromptNotFoundError):
        await PromptAdmin().deactivate(db, 999)


@pytest.mark.asyncio
async def test_resolve_store_failure_raises_selection_error(unreachable_session_factory):
    with pytest.raises(SelectionError, match="Prompt lookup failed"):
        await PromptResolver(unreachable_session_factory).resolve_all()
