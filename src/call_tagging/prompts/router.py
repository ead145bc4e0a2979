"""Campaign prompt 管理 API。"""
from __future__ import annotations
from fastapi import APIRouter, Query

from call_tagging.common.dependencies import DBSession
from call_tagging.common.schemas import PromptCreateRequest, PromptMetaUpdateRequest
from call_tagging.prompts.service import PromptAdmin

router = APIRouter(prefix="/api/v1/prompts", tags=["Prompts"])
_admin = PromptAdmin()


@router.get("")
async def list_prompts(db: DBSession, campaign_id: str | None = Query(None)):
    prompts = await _admin.list_prompts(db, campaign_id)
    return {"data": prompts, "count": len(prompts)}


@router.get("/{prompt_id}")
async def get_prompt(prompt_id: int, db: DBSession):
    return await _admin.get_prompt(db, prompt_id)


@router.post("", status_code=201)
async def create_prompt_version(body: PromptCreateRequest, db: DBSession):
    """新版本立即生效, 同 campaign 旧版本自动停用。"""
    result = await _admin.create_version(
        db,
        campaign_id=body.campaign_id,
        system_prompt=body.system_prompt,
        campaign_name=body.campaign_name,
        prompt_version=body.prompt_version,
        notes=body.notes,
    )
    await db.commit()
    return result


@router.patch("/{prompt_id}")
async def update_prompt_meta(prompt_id: int, body: PromptMetaUpdateRequest, db: DBSession):
    result = await _admin.update_meta(
        db, prompt_id,
        campaign_name=body.campaign_name,
        notes=body.notes,
        prompt_version=body.prompt_version,
    )
    await db.commit()
    return result


@router.delete("/{prompt_id}")
async def deactivate_prompt(prompt_id: int, db: DBSession):
    result = await _admin.deactivate(db, prompt_id)
    await db.commit()
    return result
