"""检查清单 SSE 路由

GET /api/checklists/{kind}/stream: 页面状态实时推送。
- view: 缓存/筛选/展开状态变化后的完整页面
- notification: 操作员提示
- 心跳注释保活
"""

import asyncio
import json

import structlog
from fastapi import APIRouter, Depends
from odara.core.config import FEED_QUEUE_MAXSIZE, SSE_HEARTBEAT_INTERVAL
from odara.core.notifications import Notification
from odara.core.screen import ChecklistScreen
from sse_starlette.sse import EventSourceResponse

from ..deps import get_screen
from ..services.render import render_notification, render_screen

log = structlog.get_logger()

router = APIRouter()


def _view_event(screen: ChecklistScreen) -> dict:
    return {
        "event": "view",
        "data": json.dumps(render_screen(screen), ensure_ascii=False),
    }


@router.get("/api/checklists/{kind}/stream")
async def stream_checklist(screen: ChecklistScreen = Depends(get_screen)):
    """SSE 页面流：连接后先推送当前页面，之后每次变化推送一次（合并连续变化）"""

    async def event_generator():
        changed = asyncio.Event()
        notifications: asyncio.Queue[Notification] = asyncio.Queue(
            maxsize=FEED_QUEUE_MAXSIZE
        )

        def on_notification(notification: Notification) -> None:
            try:
                notifications.put_nowait(notification)
            except asyncio.QueueFull:
                log.warning("stream_notification_dropped", kind=screen.policy.kind)
            changed.set()

        unsubscribe_view = screen.subscribe(changed.set)
        unsubscribe_notifications = screen.notifications.subscribe(on_notification)
        try:
            yield _view_event(screen)
            while True:
                try:
                    await asyncio.wait_for(changed.wait(), timeout=SSE_HEARTBEAT_INTERVAL)
                except TimeoutError:
                    yield {"comment": "heartbeat"}
                    continue
                changed.clear()
                while not notifications.empty():
                    notification = notifications.get_nowait()
                    yield {
                        "id": notification.notification_id,
                        "event": "notification",
                        "data": json.dumps(
                            render_notification(notification), ensure_ascii=False
                        ),
                    }
                yield _view_event(screen)
        finally:
            unsubscribe_view()
            unsubscribe_notifications()

    return EventSourceResponse(event_generator())
