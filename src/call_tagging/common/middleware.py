"""全局错误处理中间件。"""
from __future__ import annotations
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from call_tagging.common.exceptions import CallTaggingError
from call_tagging.common.schemas import ErrorResponse
import structlog

logger = structlog.get_logger()


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CallTaggingError)
    async def handle_call_tagging_error(request: Request, exc: CallTaggingError):
        logger.warning("business_error",
                       code=exc.code, message=str(exc),
                       status=exc.http_status, path=request.url.path)
        body = ErrorResponse(**exc.to_dict())
        return JSONResponse(status_code=exc.http_status, content=body.model_dump())

    @app.exception_handler(Exception)
    async def handle_general_error(request: Request, exc: Exception):
        logger.exception("unhandled_error", path=request.url.path)
        body = ErrorResponse(error_code="INTERNAL_ERROR", message="Internal server error",
                             severity="critical")
        return JSONResponse(status_code=500, content=body.model_dump())
