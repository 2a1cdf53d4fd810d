"""检查清单路由

GET    /api/checklists/{kind}                          分组视图（查询参数修改筛选）
POST   /api/checklists/{kind}/reload                   重新加载
DELETE /api/checklists/{kind}                          卸载页面
PUT    /api/checklists/{kind}/filters                  修改筛选
DELETE /api/checklists/{kind}/filters                  清空筛选
POST   /api/checklists/{kind}/groups/{day}/toggle      展开/折叠日期分组
POST   /api/checklists/{kind}/tasks/{task_id}/status   请求状态流转
POST   /api/checklists/{kind}/tasks/{task_id}/annotation  编辑备注
GET    /api/checklists/{kind}/notifications            最近提示

状态请求：立即完成时返回 200 + 结果；需要操作员输入时返回 202 + 对话框，
流转在后台继续等待 /dialog/confirm 或 /dialog/cancel。
"""

import asyncio
from collections.abc import Coroutine
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query
from odara.core.dialog import DialogState
from odara.core.exceptions import DialogBusyError
from odara.core.models.enums import TaskStatus
from odara.core.screen import ChecklistScreen
from pydantic import BaseModel
from starlette.responses import JSONResponse

from ..deps import get_operator_id, get_screen, get_screen_registry
from ..services.render import render_dialog, render_notification, render_result, render_screen
from ..services.screen_registry import ScreenRegistry

router = APIRouter()


class StatusRequest(BaseModel):
    """状态请求体"""

    status: TaskStatus


class FiltersUpdate(BaseModel):
    """筛选修改：只有显式传入的字段会改变，传 null 取消该条件"""

    resident_id: int | None = None
    status: TaskStatus | None = None
    date_from: date | None = None
    date_to: date | None = None
    search_text: str | None = None


async def _run_until_dialog(
    screens: ScreenRegistry,
    screen: ChecklistScreen,
    operation: Coroutine[Any, Any, Any],
) -> JSONResponse:
    """运行操作直到它结束或打开对话框"""
    if screen.dialog.state == DialogState.OPEN:
        operation.close()
        raise DialogBusyError("a confirmation dialog is already open")

    task = screens.spawn(operation, owner=screen)
    waiter = asyncio.ensure_future(screen.dialog.wait_until_open())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        if not waiter.done():
            waiter.cancel()

    if not task.done():
        request = waiter.result()
        if request is not None:
            return JSONResponse(
                status_code=202,
                content={"dialog": render_dialog(request), "view": render_screen(screen)},
            )
        # 唤醒前对话框已被处理，等待结果
        await task

    result = task.result()
    return JSONResponse(
        status_code=200,
        content={"result": render_result(result), "view": render_screen(screen)},
    )


@router.get("/api/checklists/{kind}")
async def get_checklist(
    screen: ChecklistScreen = Depends(get_screen),
    resident_id: int | None = Query(default=None),
    status: TaskStatus | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    q: str | None = Query(default=None, description="名称/食物描述搜索"),
):
    """返回分组视图；传入的查询参数会写入页面筛选"""
    changes = {
        field: value
        for field, value in (
            ("resident_id", resident_id),
            ("status", status),
            ("date_from", date_from),
            ("date_to", date_to),
            ("search_text", q),
        )
        if value is not None
    }
    if changes:
        screen.set_filters(**changes)
    return render_screen(screen)


@router.post("/api/checklists/{kind}/reload")
async def reload_checklist(screen: ChecklistScreen = Depends(get_screen)):
    """手动重试加载"""
    await screen.load()
    return render_screen(screen)


@router.delete("/api/checklists/{kind}")
async def unmount_checklist(
    kind: str,
    staff_id: int = Depends(get_operator_id),
    screens: ScreenRegistry = Depends(get_screen_registry),
):
    """卸载页面：打开中的对话框按取消处理，推送订阅关闭"""
    existed = await screens.unmount(staff_id, kind)
    return {"kind": kind, "unmounted": existed}


@router.put("/api/checklists/{kind}/filters")
async def update_filters(
    body: FiltersUpdate,
    screen: ChecklistScreen = Depends(get_screen),
):
    screen.set_filters(**body.model_dump(exclude_unset=True))
    return render_screen(screen)


@router.delete("/api/checklists/{kind}/filters")
async def clear_filters(screen: ChecklistScreen = Depends(get_screen)):
    screen.clear_filters()
    return render_screen(screen)


@router.post("/api/checklists/{kind}/groups/{day}/toggle")
async def toggle_group(day: date, screen: ChecklistScreen = Depends(get_screen)):
    expanded = screen.toggle_date(day)
    return {"date": day.isoformat(), "expanded": expanded}


@router.post("/api/checklists/{kind}/tasks/{task_id}/status")
async def request_status(
    task_id: int,
    body: StatusRequest,
    screen: ChecklistScreen = Depends(get_screen),
    screens: ScreenRegistry = Depends(get_screen_registry),
):
    """请求状态流转

    - 200: 已写入（或写入失败，见 result.outcome）
    - 202: 对话框已打开，等待 confirm / cancel
    - 404: 任务不存在
    - 409: 任务或对话框忙
    - 422: 非法流转
    """
    return await _run_until_dialog(
        screens, screen, screen.request_transition(task_id, body.status)
    )


@router.post("/api/checklists/{kind}/tasks/{task_id}/annotation")
async def edit_annotation(
    task_id: int,
    screen: ChecklistScreen = Depends(get_screen),
    screens: ScreenRegistry = Depends(get_screen_registry),
):
    """编辑终态任务的备注，返回 202 + 预填的对话框"""
    return await _run_until_dialog(screens, screen, screen.edit_annotation(task_id))


@router.get("/api/checklists/{kind}/notifications")
async def list_notifications(screen: ChecklistScreen = Depends(get_screen)):
    return {
        "notifications": [
            render_notification(n) for n in screen.notifications.recent()
        ]
    }
