"""
Campaign prompt 存取。

- PromptResolver: pass 开始时一次性取全部 active campaign prompt (无全局兜底)
- PromptAdmin: 运维接口: 列表 / 详情 / 新版本 / 元数据 / 停用
  新版本 = 停用该 campaign 当前 active 行 + 插入新 active 行, 同一事务
"""
from __future__ import annotations
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from call_tagging.common.exceptions import PromptNotFoundError, SelectionError
from call_tagging.common.models import CampaignPrompt
from call_tagging.common.schemas import PromptDTO
import structlog

logger = structlog.get_logger()


class PromptResolver:
    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    async def resolve_all(self) -> dict[str, str]:
        """campaign_id → system prompt。没有 active prompt 的 campaign 不出现。"""
        try:
            async with self._session_factory() as db:
                rows = (await db.execute(
                    select(CampaignPrompt.campaign_id, CampaignPrompt.system_prompt)
                    .where(
                        CampaignPrompt.is_active == True,  # noqa: E712
                        CampaignPrompt.campaign_id.is_not(None),
                    )
                    .order_by(CampaignPrompt.campaign_id, CampaignPrompt.id)
                )).all()
        except SQLAlchemyError as e:
            raise SelectionError(f"Prompt lookup failed: {e}") from e

        prompts: dict[str, str] = {}
        for campaign_id, text in rows:
            if text and text.strip():
                # 同 campaign 多条 active 时取最新 (id 最大)
                prompts[campaign_id] = text
        logger.info("prompts_resolved", campaigns=len(prompts))
        return prompts


def _to_dto(row: CampaignPrompt, with_body: bool = False) -> PromptDTO:
    return PromptDTO(
        id=row.id,
        campaign_id=row.campaign_id,
        campaign_name=row.campaign_name,
        prompt_version=row.prompt_version,
        is_active=row.is_active,
        notes=row.notes,
        prompt_chars=len(row.system_prompt or ""),
        system_prompt=row.system_prompt if with_body else None,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class PromptAdmin:
    """调用方负责 commit。"""

    async def list_prompts(
        self, db: AsyncSession, campaign_id: str | None = None,
    ) -> list[PromptDTO]:
        stmt = select(CampaignPrompt)
        if campaign_id is not None:
            stmt = stmt.where(CampaignPrompt.campaign_id == campaign_id)
        stmt = stmt.order_by(CampaignPrompt.campaign_id, CampaignPrompt.id.desc())
        rows = (await db.execute(stmt)).scalars().all()
        return [_to_dto(r) for r in rows]

    async def get_prompt(self, db: AsyncSession, prompt_id: int) -> PromptDTO:
        return _to_dto(await self._get_row(db, prompt_id), with_body=True)

    async def create_version(
        self,
        db: AsyncSession,
        campaign_id: str,
        system_prompt: str,
        campaign_name: str | None = None,
        prompt_version: str = "V5",
        notes: str | None = None,
    ) -> PromptDTO:
        now = datetime.now(timezone.utc)
        await db.execute(
            update(CampaignPrompt)
            .where(CampaignPrompt.campaign_id == campaign_id,
                   CampaignPrompt.is_active == True)  # noqa: E712
            .values(is_active=False, updated_at=now)
        )
        row = CampaignPrompt(
            campaign_id=campaign_id,
            campaign_name=campaign_name,
            prompt_version=prompt_version or "V5",
            system_prompt=system_prompt,
            is_active=True,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        db.add(row)
        await db.flush()
        logger.info("prompt_version_created",
                    campaign_id=campaign_id, prompt_id=row.id,
                    version=row.prompt_version, chars=len(system_prompt))
        return _to_dto(row)

    async def update_meta(
        self,
        db: AsyncSession,
        prompt_id: int,
        campaign_name: str | None = None,
        notes: str | None = None,
        prompt_version: str | None = None,
    ) -> PromptDTO:
        """只改元数据; 改 prompt 正文走 create_version。"""
        row = await self._get_row(db, prompt_id)
        if campaign_name is not None:
            row.campaign_name = campaign_name
        if notes is not None:
            row.notes = notes
        if prompt_version is not None:
            row.prompt_version = prompt_version
        row.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return _to_dto(row)

    async def deactivate(self, db: AsyncSession, prompt_id: int) -> PromptDTO:
        """软删除, 行保留作历史。"""
        row = await self._get_row(db, prompt_id)
        row.is_active = False
        row.updated_at = datetime.now(timezone.utc)
        await db.flush()
        logger.info("prompt_deactivated", prompt_id=prompt_id, campaign_id=row.campaign_id)
        return _to_dto(row)

    async def _get_row(self, db: AsyncSession, prompt_id: int) -> CampaignPrompt:
        row = await db.get(CampaignPrompt, prompt_id)
        if row is None:
            raise PromptNotFoundError(f"Prompt {prompt_id} not found")
        return row
