"""确认对话框路由

GET  /api/checklists/{kind}/dialog          当前对话框（关闭时 dialog 为 null）
POST /api/checklists/{kind}/dialog/confirm  {text} 确认
POST /api/checklists/{kind}/dialog/cancel   取消

confirm / cancel 会等待被挂起的流转结束，并返回其结果。
"""

from fastapi import APIRouter, Depends
from odara.core.screen import ChecklistScreen
from pydantic import BaseModel

from ..deps import get_screen, get_screen_registry
from ..services.render import render_dialog, render_result, render_screen
from ..services.screen_registry import ScreenRegistry

router = APIRouter()


class ConfirmRequest(BaseModel):
    """确认请求体，文本原样保存"""

    text: str = ""


async def _finish(screen: ChecklistScreen, screens: ScreenRegistry) -> dict:
    operation = screens.pending_operation(screen)
    result = await operation if operation is not None else None
    return {
        "result": render_result(result) if result is not None else None,
        "view": render_screen(screen),
    }


@router.get("/api/checklists/{kind}/dialog")
async def get_dialog(screen: ChecklistScreen = Depends(get_screen)):
    return {
        "state": screen.dialog.state.value,
        "dialog": render_dialog(screen.dialog.request),
    }


@router.post("/api/checklists/{kind}/dialog/confirm")
async def confirm_dialog(
    body: ConfirmRequest,
    screen: ChecklistScreen = Depends(get_screen),
    screens: ScreenRegistry = Depends(get_screen_registry),
):
    """确认

    - 409: 没有打开的对话框
    - 422: 必填状态收到空白文本，对话框保持打开
    """
    screen.dialog.confirm(body.text)
    return await _finish(screen, screens)


@router.post("/api/checklists/{kind}/dialog/cancel")
async def cancel_dialog(
    screen: ChecklistScreen = Depends(get_screen),
    screens: ScreenRegistry = Depends(get_screen_registry),
):
    """取消：必填状态不写入；餐食的 COMPLETED 仍然写入"""
    screen.dialog.cancel()
    return await _finish(screen, screens)
