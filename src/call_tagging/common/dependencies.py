"""FastAPI 依赖注入。lifespan 中 override 这些 sentinel 函数。"""
from __future__ import annotations
from typing import Annotated, AsyncGenerator
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from call_tagging.scheduler.runner import PassScheduler


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """占位: 由 main.py lifespan 通过 dependency_overrides 替换。"""
    raise RuntimeError("Database session not initialized. Check lifespan setup.")
    yield  # type: ignore[misc]


async def get_scheduler() -> PassScheduler:
    """占位: 由 main.py lifespan 通过 dependency_overrides 替换。"""
    raise RuntimeError("Scheduler not initialized. Check lifespan setup.")


DBSession = Annotated[AsyncSession, Depends(get_db)]
Scheduler = Annotated[PassScheduler, Depends(get_scheduler)]
