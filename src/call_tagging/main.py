"""
Call Tagging Service 应用入口。

启动: uvicorn call_tagging.main:create_app --factory --port 8000
需要: PostgreSQL (表结构: python scripts/init_db.py)

启动顺序: 数据库 → pipeline 组件 + 调度器 → 依赖注入。
任一步失败不阻止启动, /api/v1/health 返回 degraded。
"""
from __future__ import annotations
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from call_tagging.settings import settings

logger = structlog.get_logger()

LOG_LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}


def _configure_logging() -> None:
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.app_env == "development"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            LOG_LEVELS.get(settings.log_level.upper(), 20)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


async def _connect_database(app: FastAPI) -> None:
    from call_tagging.common.database import build_engine, build_session_factory

    app.state.engine = None
    app.state.session_factory = None
    try:
        engine = build_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("database_connection_failed", error=str(e))
        return
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.services_ready["database"] = True
    logger.info("database_connected")


async def _start_pipeline(app: FastAPI) -> None:
    from call_tagging.pipeline.assembly import build_orchestrator
    from call_tagging.scheduler.runner import PassScheduler, RunGuard
    from call_tagging.scheduler.window import RunWindow

    if not settings.openrouter_api_key:
        logger.warning("classifier_api_key_missing")
    try:
        orchestrator = build_orchestrator(app.state.session_factory)
        app.state.classifier = orchestrator.classifier
        app.state.services_ready["classifier"] = bool(settings.openrouter_api_key)

        scheduler = PassScheduler(
            orchestrator=orchestrator,
            guard=RunGuard(),
            window=RunWindow.from_settings(settings),
            interval_seconds=settings.schedule_interval_minutes * 60,
            enabled=settings.schedule_enabled,
            circuit=orchestrator.classifier.circuit,
        )
        await scheduler.start()
    except Exception as e:
        logger.exception("component_assembly_failed", error=str(e))
        return
    app.state.scheduler = scheduler
    app.state.services_ready["scheduler"] = True
    logger.info("pipeline_initialized",
                model=orchestrator.classifier.model_name,
                batch_size=settings.batch_size, ceiling=settings.pass_ceiling)


def _install_dependencies(app: FastAPI) -> None:
    """用真实实现替换 common.dependencies 中的占位函数。"""
    from call_tagging.common.dependencies import get_db, get_scheduler

    session_factory = app.state.session_factory
    scheduler = app.state.scheduler

    if session_factory is not None:
        async def _session():
            async with session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        app.dependency_overrides[get_db] = _session

    if scheduler is not None:
        app.dependency_overrides[get_scheduler] = lambda: scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    _configure_logging()
    logger.info("startup_begin", env=settings.app_env)

    app.state.services_ready = {"database": False, "classifier": False, "scheduler": False}
    app.state.scheduler = None
    app.state.classifier = None

    await _connect_database(app)
    if app.state.session_factory is not None:
        await _start_pipeline(app)
    _install_dependencies(app)
    logger.info("startup_complete", services=app.state.services_ready)

    yield

    logger.info("shutdown_begin")
    if app.state.scheduler is not None:
        await app.state.scheduler.stop()
    if app.state.classifier is not None:
        await app.state.classifier.aclose()
    if app.state.engine is not None:
        await app.state.engine.dispose()
    logger.info("shutdown_complete")


def create_app() -> FastAPI:
    _configure_logging()
    app = FastAPI(
        title=settings.app_title,
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.app_env == "development" else None,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from call_tagging.common.middleware import register_error_handlers
    register_error_handlers(app)

    @app.get("/api/v1/health")
    async def health():
        services = getattr(app.state, "services_ready", {})
        ready = bool(services) and all(services.values())
        return JSONResponse(
            status_code=200 if ready else 503,
            content={"status": "healthy" if ready else "degraded", "services": services},
        )

    from call_tagging.analytics.router import router as analytics_router
    from call_tagging.prompts.router import router as prompts_router
    from call_tagging.scheduler.router import router as runs_router

    app.include_router(runs_router)
    app.include_router(prompts_router)
    app.include_router(analytics_router)
    return app
