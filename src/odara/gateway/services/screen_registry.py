"""ScreenRegistry -- 每个 (操作员, 任务类型) 一个已挂载的检查清单页面

HTTP 请求是无状态的，而页面有状态（缓存、筛选、对话框、推送订阅），
所以 gateway 按操作员保存页面实例。等待对话框的状态请求在后台任务里继续运行。
"""

import asyncio
from collections.abc import Coroutine
from functools import partial
from typing import Any

import structlog
from odara.core.models.enums import TaskKind
from odara.core.models.policy import get_policy
from odara.core.screen import ChecklistScreen
from odara.core.store.protocols import TaskStoreClient

log = structlog.get_logger()


class ScreenRegistry:
    """已挂载页面的登记表"""

    def __init__(self, store: TaskStoreClient) -> None:
        self._store = store
        self._screens: dict[tuple[int, TaskKind], ChecklistScreen] = {}
        self._lock = asyncio.Lock()
        self._background: set[asyncio.Task] = set()
        # 每个页面最多一个等待对话框的操作（对话框单飞）
        self._operations: dict[ChecklistScreen, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._screens)

    def get(self, staff_id: int, kind: TaskKind | str) -> ChecklistScreen | None:
        return self._screens.get((staff_id, TaskKind(kind)))

    async def get_or_mount(self, staff_id: int, kind: TaskKind | str) -> ChecklistScreen:
        """获取页面，不存在时创建并挂载

        Raises:
            UnknownTaskKindError: 未知任务类型
        """
        policy = get_policy(kind)
        key = (staff_id, policy.kind)
        async with self._lock:
            screen = self._screens.get(key)
            if screen is None:
                screen = ChecklistScreen(policy, self._store, operator_id=staff_id)
                await screen.mount()
                self._screens[key] = screen
                log.info("screen_registered", staff_id=staff_id, kind=policy.kind)
        return screen

    async def unmount(self, staff_id: int, kind: TaskKind | str) -> bool:
        """卸载并移除页面，返回是否存在"""
        screen = self._screens.pop((staff_id, get_policy(kind).kind), None)
        if screen is None:
            return False
        await screen.unmount()
        return True

    def spawn(
        self,
        coro: Coroutine[Any, Any, Any],
        owner: ChecklistScreen | None = None,
    ) -> asyncio.Task:
        """在后台运行（等待对话框的）操作，保持引用直到结束"""
        task = asyncio.create_task(coro)
        self._background.add(task)
        if owner is not None:
            self._operations[owner] = task
            task.add_done_callback(partial(self._forget_operation, owner))
        task.add_done_callback(self._on_background_done)
        return task

    def _forget_operation(self, owner: ChecklistScreen, task: asyncio.Task) -> None:
        if self._operations.get(owner) is task:
            del self._operations[owner]

    def pending_operation(self, screen: ChecklistScreen) -> asyncio.Task | None:
        """该页面正在等待对话框的操作"""
        return self._operations.get(screen)

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.warning(
                "background_operation_failed",
                error_type=type(exc).__name__,
                error=str(exc),
            )

    async def close_all(self) -> None:
        """卸载全部页面（关闭对话框会让后台操作结束）"""
        screens = list(self._screens.values())
        self._screens.clear()
        for screen in screens:
            await screen.unmount()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
