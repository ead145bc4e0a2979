"""
Result Writer: 单条通话的分类结果原子落库。

同一事务内:
1. upsert call_analysis (整行替换)
2. upsert call_analysis_raw
3. call_tags: 删除不在新集合中的行, upsert 新行 (刷新 confidence)
4. call_records.ai_processed = true, processed_at = now

任一步失败 → 整体回滚 → PersistenceError。重复 persist 同一结果, 终态不变。
"""
from __future__ import annotations
from datetime import datetime, timezone

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from call_tagging.common.database import upsert
from call_tagging.common.exceptions import PersistenceError
from call_tagging.common.models import CallAnalysis, CallAnalysisRaw, CallRecord, CallTag
from call_tagging.pipeline.encoder import TierEncoder
from call_tagging.pipeline.ir import EncodedClassification, TagAssignment
import structlog

logger = structlog.get_logger()

MAX_ERROR_LENGTH = 2000


class ResultWriter:
    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    async def persist(
        self,
        call_id: int,
        encoded: EncodedClassification,
        assignments: list[TagAssignment] | None = None,
    ) -> None:
        if assignments is None:
            assignments = TierEncoder.tag_assignments(encoded)
        now = datetime.now(timezone.utc)

        try:
            async with self._session_factory() as db:
                async with db.begin():
                    await self._upsert_analysis(db, call_id, encoded, now)
                    await self._upsert_raw(db, call_id, encoded.raw, now)
                    await self._replace_tags(db, call_id, assignments)
                    await self._mark_processed(db, call_id, now)
        except PersistenceError:
            raise
        except SQLAlchemyError as e:
            logger.error("persist_rolled_back", call_id=call_id, error=str(e))
            raise PersistenceError(f"Persist failed for call {call_id}: {e}") from e

        logger.debug("call_persisted", call_id=call_id, tags=len(assignments))

    async def record_failure(self, call_id: int, error: str) -> None:
        """失败计数 + 最后错误 (独立事务)。"""
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    await db.execute(
                        update(CallRecord)
                        .where(CallRecord.id == call_id)
                        .values(
                            ai_attempts=CallRecord.ai_attempts + 1,
                            ai_last_error=error[:MAX_ERROR_LENGTH],
                        )
                    )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failure bookkeeping failed for call {call_id}: {e}") from e

    async def _upsert_analysis(
        self, db: AsyncSession, call_id: int,
        encoded: EncodedClassification, now: datetime,
    ) -> None:
        row = encoded.to_row()
        row["call_id"] = call_id
        row["processed_at"] = now
        stmt = upsert(db, CallAnalysis).values(**row)
        stmt = stmt.on_conflict_do_update(
            index_elements=[CallAnalysis.call_id],
            set_={k: stmt.excluded[k] for k in row if k != "call_id"},
        )
        await db.execute(stmt)

    async def _upsert_raw(
        self, db: AsyncSession, call_id: int, raw: dict, now: datetime,
    ) -> None:
        stmt = upsert(db, CallAnalysisRaw).values(
            call_id=call_id, raw_ai_response=raw or {}, stored_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[CallAnalysisRaw.call_id],
            set_={
                "raw_ai_response": stmt.excluded.raw_ai_response,
                "stored_at": stmt.excluded.stored_at,
            },
        )
        await db.execute(stmt)

    async def _replace_tags(
        self, db: AsyncSession, call_id: int, assignments: list[TagAssignment],
    ) -> None:
        tag_ids = [a.tag_id for a in assignments]
        await db.execute(
            delete(CallTag).where(CallTag.call_id == call_id, CallTag.tag_id.not_in(tag_ids))
        )
        if not assignments:
            return
        stmt = upsert(db, CallTag).values([
            {"call_id": call_id, "tag_id": a.tag_id, "confidence": a.confidence}
            for a in assignments
        ])
        stmt = stmt.on_conflict_do_update(
            index_elements=[CallTag.call_id, CallTag.tag_id],
            set_={"confidence": stmt.excluded.confidence},
        )
        await db.execute(stmt)

    async def _mark_processed(self, db: AsyncSession, call_id: int, now: datetime) -> None:
        result = await db.execute(
            update(CallRecord)
            .where(CallRecord.id == call_id)
            .values(ai_processed=True, processed_at=now, ai_last_error=None)
        )
        if result.rowcount == 0:
            raise PersistenceError(f"Call {call_id} not found")
