"""TaskCache -- 页面渲染所依据的内存任务集合

只有两个写入口：apply_local_patch（乐观更新）与 apply_feed_event（后端推送）。
合并结果会重新校验 ScheduledTask 不变量，不合法的合并被丢弃并记录日志。
"""

from collections.abc import Callable, Iterable
from typing import Any

import structlog
from pydantic import ValidationError

from .models.enums import FeedOperation
from .models.feed import FeedEvent, parse_feed_event
from .models.task import ScheduledTask, TaskPatch

log = structlog.get_logger()

CacheListener = Callable[["TaskCache"], None]


class TaskCache:
    """按 task_id 索引的任务集合"""

    def __init__(self) -> None:
        self._tasks: dict[int, ScheduledTask] = {}
        self._listeners: list[CacheListener] = []
        self._divergent: set[int] = set()
        self._version = 0

    @property
    def version(self) -> int:
        """每次状态变化递增，供视图判断是否需要重算"""
        return self._version

    @property
    def divergent_ids(self) -> frozenset[int]:
        """写入失败后本地状态可能与后端不一致的任务"""
        return frozenset(self._divergent)

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: int) -> bool:
        return task_id in self._tasks

    def get(self, task_id: int) -> ScheduledTask | None:
        return self._tasks.get(task_id)

    def list(self) -> list[ScheduledTask]:
        """按插入顺序返回所有任务"""
        return list(self._tasks.values())

    def subscribe(self, listener: CacheListener) -> Callable[[], None]:
        """注册变更监听，返回取消函数"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def load(self, tasks: Iterable[ScheduledTask]) -> None:
        """全量替换（批量加载之后调用）"""
        self._tasks = {task.task_id: task for task in tasks}
        self._divergent.clear()
        self._changed()

    def apply_local_patch(self, task_id: int, patch: TaskPatch) -> ScheduledTask | None:
        """立即合并本地部分更新（乐观更新）

        Returns:
            合并后的任务；task_id 不在缓存中或合并结果非法时返回 None
        """
        existing = self._tasks.get(task_id)
        if existing is None:
            log.warning("cache_local_patch_unknown_task", task_id=task_id)
            return None
        merged = self._merge(existing, patch.to_row(), source="local")
        if merged is None:
            return None
        if merged != existing:
            self._tasks[task_id] = merged
            self._changed()
        return merged

    def apply_feed_event(self, event: FeedEvent | dict[str, Any]) -> bool:
        """合并后端推送的变更

        insert/update：事件中出现的字段覆盖缓存，其余字段不变；未见过的 task_id
        在行数据完整时插入。delete：移除该行。重复应用同一事件不产生变化。

        Returns:
            缓存是否发生变化
        """
        if not isinstance(event, FeedEvent):
            parsed = parse_feed_event(event)
            if parsed is None:
                return False
            event = parsed

        try:
            task_id = event.task_id
        except (KeyError, TypeError, ValueError):
            # 绕过校验构造的事件（model_construct 或事后修改 row）
            log.warning(
                "feed_event_malformed",
                operation=event.operation,
                error="row has no integer task_id",
            )
            return False

        if event.operation == FeedOperation.DELETE:
            if self._tasks.pop(task_id, None) is None:
                return False
            self._divergent.discard(task_id)
            self._changed()
            return True

        existing = self._tasks.get(task_id)
        if existing is None:
            try:
                task = ScheduledTask.model_validate(event.row)
            except ValidationError as e:
                log.warning(
                    "feed_event_incomplete_row",
                    task_id=task_id,
                    operation=event.operation,
                    error_count=e.error_count(),
                )
                return False
            self._tasks[task_id] = task
            self._changed()
            return True

        merged = self._merge(existing, event.row, source="feed")
        if merged is None or merged == existing:
            return False
        self._tasks[task_id] = merged
        # 后端推送的最新行覆盖了本地状态，不再视为不一致
        self._divergent.discard(task_id)
        self._changed()
        return True

    def mark_divergent(self, task_id: int) -> None:
        """标记写入失败的任务（乐观状态不回滚）"""
        if task_id in self._tasks and task_id not in self._divergent:
            self._divergent.add(task_id)
            self._changed()

    def _merge(
        self,
        existing: ScheduledTask,
        fields: dict[str, Any],
        source: str,
    ) -> ScheduledTask | None:
        data = existing.model_dump()
        data.update(fields)
        try:
            merged = ScheduledTask.model_validate(data)
        except ValidationError as e:
            log.warning(
                "cache_merge_rejected",
                task_id=existing.task_id,
                source=source,
                reason="invalid_row",
                error_count=e.error_count(),
            )
            return None
        if merged.resident_id != existing.resident_id:
            log.warning(
                "cache_merge_rejected",
                task_id=existing.task_id,
                source=source,
                reason="resident_reassignment",
            )
            return None
        return merged

    def _changed(self) -> None:
        self._version += 1
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                log.exception("cache_listener_failed")
