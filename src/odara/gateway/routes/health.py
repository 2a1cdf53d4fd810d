"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含后端存储连通性与已挂载页面数。
"""

import structlog
from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(request: Request):
    """Readiness 检查 -- 存储不可达时返回 503"""
    checks: dict = {}
    all_ok = True

    try:
        store = request.app.state.store
        await store.ping()
        checks["store"] = "ok"
    except Exception as e:
        log.warning("readiness_store_failed", error=str(e))
        checks["store"] = f"error: {str(e)}"
        all_ok = False

    screens = getattr(request.app.state, "screens", None)
    checks["mounted_screens"] = len(screens) if screens is not None else 0

    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={
            "status": "ready" if all_ok else "not_ready",
            "checks": checks,
        },
    )
