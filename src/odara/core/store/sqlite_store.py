"""TaskStoreClient 的 SQLite 实现

本地后端：scheduled_tasks / task_templates / residents 三张表。
每次提交成功的 insert/update/delete 都会通过 FeedHub 推送一条 FeedEvent，
模拟托管存储的实时变更通道。
"""

from collections.abc import Sequence
from typing import Any

import aiosqlite
import structlog

from ..exceptions import RowNotFoundError, StoreError
from ..models.enums import FeedOperation, TaskKind
from ..models.feed import FeedEvent
from ..models.task import Resident, ScheduledTask, TaskPatch, TaskTemplate
from .feed_hub import FeedHub, HubSubscription

log = structlog.get_logger()

_TASK_COLUMNS = (
    "task_id",
    "kind",
    "template_id",
    "resident_id",
    "scheduled_date",
    "scheduled_time",
    "executed_date",
    "executed_time",
    "status",
    "staff_id",
    "annotation",
)

_PATCH_COLUMNS = frozenset(
    {"status", "annotation", "executed_date", "executed_time", "staff_id"}
)


class SqliteTaskStore:
    """TaskStoreClient 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection, hub: FeedHub | None = None) -> None:
        self._conn = conn
        self._conn.row_factory = aiosqlite.Row
        self.hub = hub or FeedHub()

    @property
    def conn(self) -> aiosqlite.Connection:
        return self._conn

    async def fetch_tasks(
        self,
        kind: TaskKind,
        resident_ids: Sequence[int] | None = None,
    ) -> list[ScheduledTask]:
        """批量加载某类任务，按计划日期/时间正序，并 join 模板与住户"""
        sql = "SELECT * FROM scheduled_tasks WHERE kind = ?"
        params: list[Any] = [kind.value]
        if resident_ids is not None:
            if not resident_ids:
                return []
            placeholders = ", ".join("?" for _ in resident_ids)
            sql += f" AND resident_id IN ({placeholders})"
            params.extend(resident_ids)
        sql += " ORDER BY scheduled_date ASC, scheduled_time ASC, task_id ASC"

        try:
            cursor = await self._conn.execute(sql, params)
            task_rows = await cursor.fetchall()
            templates = await self._load_templates(kind)
            residents = await self._load_residents()
        except aiosqlite.Error as e:
            raise StoreError(f"fetch_tasks failed: {e}") from e

        return [
            self._row_to_task(row, templates, residents) for row in task_rows
        ]

    async def get_task(self, task_id: int) -> ScheduledTask | None:
        """根据 task_id 查询单个任务（含 join）"""
        cursor = await self._conn.execute(
            "SELECT * FROM scheduled_tasks WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        templates = await self._load_templates(TaskKind(row["kind"]))
        residents = await self._load_residents()
        return self._row_to_task(row, templates, residents)

    async def update_task(self, kind: TaskKind, task_id: int, patch: TaskPatch) -> None:
        """单行部分更新并推送 UPDATE 事件

        只写 patch 中显式设置的字段；同一 patch 重复写入得到同一行。

        Raises:
            RowNotFoundError: 行不存在
            StoreError: 数据库错误
        """
        fields = patch.to_json_row()
        if not fields:
            return
        unknown = set(fields) - _PATCH_COLUMNS
        if unknown:
            raise StoreError(f"unsupported patch columns: {sorted(unknown)}", recoverable=False)

        assignments = ", ".join(f"{column} = ?" for column in fields)
        try:
            cursor = await self._conn.execute(
                f"UPDATE scheduled_tasks SET {assignments} WHERE task_id = ? AND kind = ?",
                (*fields.values(), task_id, kind.value),
            )
            if cursor.rowcount == 0:
                await self._conn.rollback()
                raise RowNotFoundError(task_id)
            await self._conn.commit()
        except aiosqlite.Error as e:
            await self._conn.rollback()
            raise StoreError(f"update_task failed: {e}") from e

        row = await self._fetch_raw_row(task_id)
        if row is not None:
            await self._publish(kind, FeedOperation.UPDATE, row)

    async def insert_task(self, task: ScheduledTask) -> None:
        """写入新排程（由外部排程进程调用）并推送 INSERT 事件"""
        data = task.model_dump(mode="json", include=set(_TASK_COLUMNS))
        placeholders = ", ".join("?" for _ in _TASK_COLUMNS)
        try:
            await self._conn.execute(
                f"INSERT INTO scheduled_tasks ({', '.join(_TASK_COLUMNS)}) "
                f"VALUES ({placeholders})",
                tuple(data[column] for column in _TASK_COLUMNS),
            )
            await self._conn.commit()
        except aiosqlite.Error as e:
            await self._conn.rollback()
            raise StoreError(f"insert_task failed: {e}") from e

        joined = await self.get_task(task.task_id)
        if joined is not None:
            await self._publish(task.kind, FeedOperation.INSERT, joined.model_dump(mode="json"))

    async def delete_task(self, kind: TaskKind, task_id: int) -> bool:
        """直接删除一行（不属于状态引擎的契约）并推送 DELETE 事件"""
        try:
            cursor = await self._conn.execute(
                "DELETE FROM scheduled_tasks WHERE task_id = ? AND kind = ?",
                (task_id, kind.value),
            )
            await self._conn.commit()
        except aiosqlite.Error as e:
            await self._conn.rollback()
            raise StoreError(f"delete_task failed: {e}") from e

        if cursor.rowcount == 0:
            return False
        await self._publish(kind, FeedOperation.DELETE, {"task_id": task_id})
        return True

    async def add_resident(self, resident: Resident) -> None:
        """写入住户（住户管理不属于本模块，此处供初始化与测试使用）"""
        await self._conn.execute(
            "INSERT OR REPLACE INTO residents (resident_id, name, room) VALUES (?, ?, ?)",
            (resident.resident_id, resident.name, resident.room),
        )
        await self._conn.commit()

    async def add_template(self, template: TaskTemplate) -> None:
        """写入任务模板（模板编辑不属于本模块，此处供初始化与测试使用）"""
        data = template.model_dump(mode="json")
        columns = list(data)
        await self._conn.execute(
            f"INSERT OR REPLACE INTO task_templates ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})",
            tuple(int(v) if isinstance(v, bool) else v for v in data.values()),
        )
        await self._conn.commit()

    async def subscribe(self, kind: TaskKind) -> HubSubscription:
        """订阅某类任务的行级变更"""
        return await self.hub.subscribe(kind)

    async def ping(self) -> None:
        """连通性检查"""
        cursor = await self._conn.execute("SELECT 1")
        await cursor.fetchone()

    async def close(self) -> None:
        await self._conn.close()

    async def _publish(self, kind: TaskKind, operation: FeedOperation, row: dict) -> None:
        event = FeedEvent(kind=kind, operation=operation, row=row)
        await self.hub.broadcast(event)
        log.debug(
            "feed_event_published",
            kind=kind,
            operation=operation,
            task_id=row.get("task_id"),
        )

    async def _fetch_raw_row(self, task_id: int) -> dict | None:
        cursor = await self._conn.execute(
            "SELECT * FROM scheduled_tasks WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        return dict(row) if row is not None else None

    async def _load_templates(self, kind: TaskKind) -> dict[int, TaskTemplate]:
        cursor = await self._conn.execute(
            "SELECT * FROM task_templates WHERE kind = ?",
            (kind.value,),
        )
        rows = await cursor.fetchall()
        templates = {}
        for row in rows:
            data = dict(row)
            data["requires_confirmation"] = bool(data["requires_confirmation"])
            templates[data["template_id"]] = TaskTemplate.model_validate(data)
        return templates

    async def _load_residents(self) -> dict[int, Resident]:
        cursor = await self._conn.execute("SELECT * FROM residents")
        rows = await cursor.fetchall()
        return {row["resident_id"]: Resident.model_validate(dict(row)) for row in rows}

    @staticmethod
    def _row_to_task(
        row: aiosqlite.Row,
        templates: dict[int, TaskTemplate],
        residents: dict[int, Resident],
    ) -> ScheduledTask:
        """将数据库行转换为 ScheduledTask，并附上模板与住户"""
        data = dict(row)
        data["template"] = templates.get(data["template_id"])
        data["resident"] = residents.get(data["resident_id"])
        return ScheduledTask.model_validate(data)
