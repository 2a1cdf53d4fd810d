"""依赖注入模块 -- 通过 FastAPI Depends 注入存储、推送与页面登记表

实例通过 app.state 管理，在 lifespan 中初始化/清理。
"""

from fastapi import Depends, Header, HTTPException, Request
from odara.core.screen import ChecklistScreen
from odara.core.store import FeedHub
from odara.core.store.protocols import TaskStoreClient

from .services.screen_registry import ScreenRegistry


def get_store(request: Request) -> TaskStoreClient:
    """从 app.state 获取存储客户端"""
    return request.app.state.store


def get_feed_hub(request: Request) -> FeedHub:
    """从 app.state 获取本地变更广播器"""
    return request.app.state.feed_hub


def get_screen_registry(request: Request) -> ScreenRegistry:
    """从 app.state 获取页面登记表"""
    return request.app.state.screens


def get_operator_id(x_staff_id: str | None = Header(default=None)) -> int:
    """从 X-Staff-Id 读取当前操作员，缺失或非法时返回 401"""
    if x_staff_id is None or not x_staff_id.strip().isdigit():
        raise HTTPException(
            status_code=401,
            detail={
                "code": "OPERATOR_REQUIRED",
                "message": "X-Staff-Id header with a numeric staff id is required",
            },
        )
    return int(x_staff_id)


async def get_screen(
    kind: str,
    staff_id: int = Depends(get_operator_id),
    screens: ScreenRegistry = Depends(get_screen_registry),
) -> ChecklistScreen:
    """当前操作员在该任务类型上的页面（首次访问时挂载）"""
    return await screens.get_or_mount(staff_id, kind)
