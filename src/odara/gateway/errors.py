"""错误响应 -- 统一为 {"error": {"code", "message"}}

调用方错误（OdaraError 子类）映射为 HTTP 状态码；存储边界的失败不会到达这里，
已由引擎/页面转为提示。
"""

import structlog
from fastapi import Request
from odara.core.exceptions import (
    AnnotationRequiredError,
    DialogBusyError,
    DialogNotOpenError,
    InvalidTransitionError,
    OdaraError,
    StoreError,
    TaskBusyError,
    TaskNotFoundError,
    UnknownTaskKindError,
)
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

log = structlog.get_logger()

# 异常类型 -> (HTTP 状态码, 错误码)
ERROR_MAP: dict[type[OdaraError], tuple[int, str]] = {
    UnknownTaskKindError: (404, "UNKNOWN_TASK_KIND"),
    TaskNotFoundError: (404, "TASK_NOT_FOUND"),
    InvalidTransitionError: (422, "INVALID_TRANSITION"),
    AnnotationRequiredError: (422, "ANNOTATION_REQUIRED"),
    TaskBusyError: (409, "TASK_BUSY"),
    DialogBusyError: (409, "DIALOG_BUSY"),
    DialogNotOpenError: (409, "DIALOG_NOT_OPEN"),
    StoreError: (503, "STORE_UNAVAILABLE"),
}


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


async def odara_error_handler(request: Request, exc: OdaraError) -> JSONResponse:
    for exc_type in type(exc).__mro__:
        if exc_type in ERROR_MAP:
            status_code, code = ERROR_MAP[exc_type]
            break
    else:
        status_code, code = 500, "INTERNAL_ERROR"
    log.info("request_rejected", code=code, error=str(exc))
    return error_response(status_code, code, str(exc))


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        content = {"error": exc.detail}
    else:
        content = {"error": {"code": "HTTP_ERROR", "message": str(exc.detail)}}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)
