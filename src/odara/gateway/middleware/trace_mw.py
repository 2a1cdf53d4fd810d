"""TraceMiddleware -- 为任务操作绑定 task_id / kind

从 /api/checklists/{kind}/tasks/{task_id}/... 路径中提取，
贯穿该请求内引擎与存储的日志。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response


def extract_trace_context(path: str) -> dict[str, str]:
    """从路径中提取 kind 与 task_id（没有则为空字典）"""
    parts = [part for part in path.split("/") if part]
    context: dict[str, str] = {}
    for i, part in enumerate(parts):
        if part == "checklists" and i + 1 < len(parts):
            context["kind"] = parts[i + 1]
        elif part == "tasks" and i + 1 < len(parts) and parts[i + 1].isdigit():
            context["task_id"] = parts[i + 1]
    return context


class TraceMiddleware(BaseHTTPMiddleware):
    """任务级追踪中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        context = extract_trace_context(request.url.path)
        if context:
            structlog.contextvars.bind_contextvars(**context)

        return await call_next(request)
