"""
Work Selector: 取下一批待分类通话。

条件: transcript 非空 AND ai_processed = false AND campaign.ai_enabled
排序: id 升序。只读, 不加锁 (单 pass 独占由调度器保证)。
"""
from __future__ import annotations
from datetime import date, datetime, time, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from call_tagging.common.exceptions import SelectionError
from call_tagging.common.models import Campaign, CallRecord
from call_tagging.pipeline.ir import WorkItem
import structlog

logger = structlog.get_logger()


class WorkSelector:
    def __init__(
        self,
        session_factory,
        classify_since: date | None = None,
        max_attempts: int = 0,
    ) -> None:
        self._session_factory = session_factory
        self._since = classify_since
        self._max_attempts = max_attempts

    def _query(self, max_count: int, after_id: int | None):
        stmt = (
            select(CallRecord)
            .join(Campaign, Campaign.campaign_id == CallRecord.campaign_id)
            .where(
                Campaign.ai_enabled == True,  # noqa: E712
                CallRecord.ai_processed == False,  # noqa: E712
                CallRecord.transcript.is_not(None),
                CallRecord.transcript != "",
            )
        )
        if self._since is not None:
            cutoff = datetime.combine(self._since, time.min, tzinfo=timezone.utc)
            stmt = stmt.where(CallRecord.call_timestamp >= cutoff)
        if self._max_attempts > 0:
            # 死信: 失败次数达到上限的通话不再选中
            stmt = stmt.where(CallRecord.ai_attempts < self._max_attempts)
        if after_id is not None:
            stmt = stmt.where(CallRecord.id > after_id)
        return stmt.order_by(CallRecord.id).limit(max_count)

    async def select_batch(
        self, max_count: int, after_id: int | None = None,
    ) -> list[WorkItem]:
        """
        返回至多 max_count 条; 空列表 = 已取完。
        after_id: 只取 id 更大的 (同一 pass 内向后翻页, 失败项不在本 pass 重选)。
        """
        if max_count <= 0:
            return []
        try:
            async with self._session_factory() as db:
                rows = (await db.execute(self._query(max_count, after_id))).scalars().all()
        except SQLAlchemyError as e:
            logger.error("selection_failed", error=str(e))
            raise SelectionError(f"Work selection failed: {e}") from e

        items = [WorkItem.from_record(r) for r in rows]
        logger.debug("work_selected", requested=max_count, selected=len(items))
        return items
