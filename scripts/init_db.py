"""
按 ORM metadata 建表 (已存在的表跳过)。

usage: python scripts/init_db.py
"""
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT / "src"))

from call_tagging.common.database import build_engine
from call_tagging.common.models import Base


async def main() -> None:
    engine = build_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    print(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    asyncio.run(main())
