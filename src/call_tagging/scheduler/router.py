"""Pass 运行控制 API。"""
from __future__ import annotations
from fastapi import APIRouter

from call_tagging.common.dependencies import Scheduler
from call_tagging.common.schemas import ErrorResponse, RunStatusDTO

router = APIRouter(prefix="/api/v1/runs", tags=["Runs"])


@router.post("", status_code=202, responses={409: {"model": ErrorResponse}})
async def trigger_run(scheduler: Scheduler):
    """手动跑一个 pass (不受时间窗限制)。已有 pass 在跑 → 409。"""
    started_at = await scheduler.trigger_now()
    return {"status": "started", "started_at": started_at}


@router.get("/status", response_model=RunStatusDTO)
async def run_status(scheduler: Scheduler):
    return scheduler.status()
