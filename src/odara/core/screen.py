"""ChecklistScreen -- 检查清单页面控制器

一个页面实例对应一类任务（药品 / 餐食 / 测量）：
- mount: 先订阅变更推送，再批量加载，之后推送事件持续合并进缓存
- unmount: 关闭对话框、停止消费、关闭订阅
- view: 按筛选条件计算分组视图（缓存版本或筛选不变时复用上次结果）
"""

import asyncio
from collections.abc import Callable, Sequence
from datetime import date
from typing import Any

import structlog

from .cache import TaskCache
from .config import FEED_RESYNC_DELAY_S, now_local
from .dialog import ConfirmationDialog
from .engine import Clock, OperatorIdentity, TaskStatusEngine, TransitionResult
from .exceptions import FeedOverflowError, StoreError
from .models.enums import TaskStatus
from .models.policy import TaskKindPolicy
from .models.task import Resident
from .notifications import NotificationCenter
from .projection import GroupedView, TaskFilters, project
from .store.protocols import FeedSubscription, TaskStoreClient

log = structlog.get_logger()

ScreenListener = Callable[[], None]


class ChecklistScreen:
    """页面状态：缓存、筛选、展开状态、对话框与提示"""

    def __init__(
        self,
        policy: TaskKindPolicy,
        store: TaskStoreClient,
        *,
        operator_id: int | OperatorIdentity,
        notifications: NotificationCenter | None = None,
        dialog: ConfirmationDialog | None = None,
        clock: Clock = now_local,
        resident_ids: Sequence[int] | None = None,
        resync_delay: float = FEED_RESYNC_DELAY_S,
    ) -> None:
        self.policy = policy
        self.cache = TaskCache()
        self.dialog = dialog or ConfirmationDialog()
        self.notifications = notifications or NotificationCenter()
        self.engine = TaskStatusEngine(
            policy,
            self.cache,
            store,
            self.dialog,
            operator_id,
            self.notifications,
            clock,
        )
        self.load_error: str | None = None
        self.loading = False

        self._store = store
        self._clock = clock
        self._resident_ids = list(resident_ids) if resident_ids is not None else None
        self._resync_delay = resync_delay
        self._filters = self.default_filters()
        self._collapsed: set[date] = set()
        self._listeners: list[ScreenListener] = []
        self._subscription: FeedSubscription | None = None
        self._consumer: asyncio.Task | None = None
        self._mounted = False
        self._view_key: tuple[int, TaskFilters] | None = None
        self._view: GroupedView | None = None

        self.cache.subscribe(lambda _cache: self._changed())

    # ============================================================
    # 生命周期
    # ============================================================

    @property
    def mounted(self) -> bool:
        return self._mounted

    async def mount(self) -> None:
        """订阅推送并加载数据，重复调用无副作用"""
        if self._mounted:
            return
        self._mounted = True
        await self._subscribe()
        await self.load()
        log.info("checklist_mounted", kind=self.policy.kind)

    async def unmount(self) -> None:
        """卸载页面：打开中的对话框按取消处理，推送订阅关闭"""
        if not self._mounted:
            return
        self._mounted = False
        self.dialog.close()

        consumer, self._consumer = self._consumer, None
        if consumer is not None and not consumer.done():
            consumer.cancel()
            try:
                await consumer
            except asyncio.CancelledError:
                pass

        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()
        log.info("checklist_unmounted", kind=self.policy.kind)

    async def __aenter__(self) -> "ChecklistScreen":
        await self.mount()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.unmount()

    async def load(self) -> bool:
        """批量加载；失败时设置 load_error 并提示，可再次调用重试

        Returns:
            是否加载成功
        """
        self.loading = True
        try:
            tasks = await self._store.fetch_tasks(self.policy.kind, self._resident_ids)
        except StoreError as e:
            self.load_error = f"Erro ao carregar {self.policy.title.lower()}"
            log.error(
                "checklist_load_failed",
                kind=self.policy.kind,
                error_type=type(e).__name__,
                error=str(e),
            )
            self.notifications.error(self.load_error)
            self._changed()
            return False
        finally:
            self.loading = False

        self.load_error = None
        self.cache.load(tasks)
        log.info("checklist_loaded", kind=self.policy.kind, count=len(tasks))
        return True

    async def _subscribe(self) -> None:
        try:
            subscription = await self._store.subscribe(self.policy.kind)
        except StoreError as e:
            # 没有推送也能使用，只是看不到其他终端的修改
            log.warning(
                "feed_subscribe_failed",
                kind=self.policy.kind,
                error_type=type(e).__name__,
            )
            return
        self._subscription = subscription
        self._consumer = asyncio.create_task(self._consume(subscription))

    async def _consume(self, subscription: FeedSubscription) -> None:
        delay = self._resync_delay
        try:
            async for event in subscription:
                if event.kind != self.policy.kind:
                    continue
                self.cache.apply_feed_event(event)
        except FeedOverflowError:
            log.warning("feed_overflow_resync", kind=self.policy.kind)
            delay = 0
        except StoreError as e:
            log.warning(
                "feed_subscription_lost",
                kind=self.policy.kind,
                error_type=type(e).__name__,
                recoverable=e.recoverable,
            )
            if not e.recoverable:
                await self._drop_subscription(subscription)
                return
        else:
            # 服务端结束了推送流（重启或断开过慢的订阅者）
            if not self._mounted:
                return
            log.warning(
                "feed_subscription_lost",
                kind=self.policy.kind,
                error_type="end_of_stream",
                recoverable=True,
            )
        await self._resync(subscription, delay)

    async def _drop_subscription(self, subscription: FeedSubscription) -> None:
        await subscription.close()
        if self._subscription is subscription:
            self._subscription = None

    async def _resync(self, subscription: FeedSubscription, delay: float) -> None:
        """断流后重新订阅并全量加载，期间错过的变更由加载补齐"""
        await self._drop_subscription(subscription)
        if delay:
            await asyncio.sleep(delay)
        if not self._mounted:
            return
        await self._subscribe()
        await self.load()

    # ============================================================
    # 筛选与视图
    # ============================================================

    def default_filters(self) -> TaskFilters:
        """今天到今天，加上该类任务的默认状态筛选"""
        today = self._clock().date()
        return TaskFilters(
            date_from=today,
            date_to=today,
            status=self.policy.default_status_filter,
        )

    @property
    def filters(self) -> TaskFilters:
        return self._filters

    def set_filters(self, **changes: Any) -> TaskFilters:
        """修改部分筛选条件（传 None 表示取消该条件）"""
        data = self._filters.model_dump()
        data.update(changes)
        filters = TaskFilters.model_validate(data)
        if filters != self._filters:
            self._filters = filters
            self._changed()
        return self._filters

    def clear_filters(self) -> TaskFilters:
        """清空所有筛选（不是恢复默认值）"""
        if self._filters != TaskFilters():
            self._filters = TaskFilters()
            self._changed()
        return self._filters

    def view(self) -> GroupedView:
        key = (self.cache.version, self._filters)
        if self._view is None or self._view_key != key:
            self._view = project(self.cache.list(), self._filters)
            self._view_key = key
        return self._view

    def toggle_date(self, day: date) -> bool:
        """切换某日期分组的展开状态，返回切换后是否展开"""
        if day in self._collapsed:
            self._collapsed.discard(day)
            expanded = True
        else:
            self._collapsed.add(day)
            expanded = False
        self._changed()
        return expanded

    def is_expanded(self, day: date) -> bool:
        return day not in self._collapsed

    def residents(self) -> list[Resident]:
        """缓存中出现的住户（筛选选项），按姓名排序"""
        seen: dict[int, Resident] = {}
        for task in self.cache.list():
            if task.resident is not None and task.resident_id not in seen:
                seen[task.resident_id] = task.resident
        return sorted(seen.values(), key=lambda r: r.name.casefold())

    # ============================================================
    # 操作
    # ============================================================

    async def request_transition(
        self, task_id: int, target: TaskStatus | str
    ) -> TransitionResult:
        return await self.engine.request_transition(task_id, target)

    async def edit_annotation(self, task_id: int) -> TransitionResult:
        return await self.engine.edit_annotation(task_id)

    def subscribe(self, listener: ScreenListener) -> Callable[[], None]:
        """缓存、筛选或展开状态变化时回调，返回取消函数"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                log.exception("screen_listener_failed", kind=self.policy.kind)
