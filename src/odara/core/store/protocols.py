"""Store Protocol 接口定义

定义 TaskStoreClient 与 FeedSubscription 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from collections.abc import Sequence
from typing import Protocol

from ..models.enums import TaskKind
from ..models.feed import FeedEvent
from ..models.task import ScheduledTask, TaskPatch


class FeedSubscription(Protocol):
    """长连接变更推送通道，必须在页面卸载时显式 close()"""

    def __aiter__(self) -> "FeedSubscription": ...

    async def __anext__(self) -> FeedEvent: ...

    async def close(self) -> None:
        """关闭订阅"""
        ...


class TaskStoreClient(Protocol):
    """任务存储客户端接口

    失败统一抛出 StoreError 及其子类。
    """

    async def fetch_tasks(
        self,
        kind: TaskKind,
        resident_ids: Sequence[int] | None = None,
    ) -> list[ScheduledTask]:
        """批量加载某类任务（join 模板与住户），空列表表示无排程"""
        ...

    async def update_task(self, kind: TaskKind, task_id: int, patch: TaskPatch) -> None:
        """单行部分更新，必须幂等：重发同一 patch 得到同一行"""
        ...

    async def subscribe(self, kind: TaskKind) -> FeedSubscription:
        """订阅某类任务的行级变更"""
        ...
