"""
手动跑一个分类 pass (不检查时间窗)。

usage: python scripts/run_pass.py [--batch-size N] [--ceiling N]
"""
import argparse
import asyncio
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT / "src"))

from call_tagging.common.database import build_engine, build_session_factory
from call_tagging.main import _configure_logging
from call_tagging.pipeline.assembly import build_orchestrator
from call_tagging.settings import settings
import structlog

logger = structlog.get_logger()


async def main(batch_size: int | None, ceiling: int | None) -> int:
    _configure_logging()
    overrides = {}
    if batch_size:
        overrides["batch_size"] = batch_size
    if ceiling:
        overrides["pass_ceiling"] = ceiling
    s = settings.model_copy(update=overrides)

    engine = build_engine()
    orchestrator = build_orchestrator(build_session_factory(engine), s=s)
    try:
        summary = await orchestrator.run_pass()
    except Exception as e:
        logger.exception("manual_pass_failed", error=str(e))
        return 1
    finally:
        await orchestrator.classifier.aclose()
        await engine.dispose()

    print(summary.to_dict())
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run one call classification pass")
    parser.add_argument("--batch-size", type=int, default=None)
    parser.add_argument("--ceiling", type=int, default=None)
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.batch_size, args.ceiling)))
