"""分类结果查询 API。"""
from __future__ import annotations
from datetime import datetime

from fastapi import APIRouter, Query

from call_tagging.analytics.service import AnalyticsService
from call_tagging.common.dependencies import DBSession

router = APIRouter(prefix="/api/v1", tags=["Analytics"])
_service = AnalyticsService()


@router.get("/calls/by-tag")
async def calls_by_tag(
    db: DBSession,
    tier: int = Query(..., ge=1, le=10),
    tag: str = Query(..., min_length=1),
    limit: int = Query(100, ge=1, le=1000),
):
    calls = await _service.calls_by_tag(db, tier, tag, limit)
    return {"calls": calls, "count": len(calls)}


@router.get("/calls/high-priority")
async def high_priority_calls(db: DBSession, limit: int = Query(50, ge=1, le=500)):
    calls = await _service.high_priority(db, limit)
    return {"calls": calls, "count": len(calls)}


@router.get("/calls/billing-discrepancies")
async def billing_discrepancies(db: DBSession, limit: int = Query(50, ge=1, le=500)):
    calls = await _service.billing_discrepancies(db, limit)
    return {"calls": calls, "count": len(calls)}


@router.get("/calls/{call_id}")
async def get_call(call_id: int, db: DBSession):
    return await _service.get_call(db, call_id)


@router.get("/analytics")
async def analytics_report(
    db: DBSession,
    start: datetime = Query(...),
    end: datetime = Query(...),
):
    return await _service.report(db, start, end)


@router.get("/tags/stats")
async def tag_stats(db: DBSession):
    stats = await _service.tag_stats(db)
    return {"data": stats, "count": len(stats)}
