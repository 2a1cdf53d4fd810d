"""全局 pytest 配置 -- 任务工厂、固定时钟、内存存储替身、临时 SQLite 数据库"""

import asyncio
from collections.abc import AsyncGenerator, Callable, Sequence
from datetime import date, datetime, time
from pathlib import Path
from zoneinfo import ZoneInfo

import aiosqlite
import pytest
import pytest_asyncio
from odara.core.exceptions import RowNotFoundError, StoreError
from odara.core.models import (
    Resident,
    ScheduledTask,
    TaskKind,
    TaskPatch,
    TaskStatus,
    TaskTemplate,
)
from odara.core.store import FeedHub, HubSubscription

TODAY = date(2025, 3, 10)
FIXED_NOW = datetime(2025, 3, 10, 14, 37, 52, 123456, tzinfo=ZoneInfo("America/Sao_Paulo"))

RESIDENTS = {
    1: Resident(resident_id=1, name="Maria Souza", room="101"),
    2: Resident(resident_id=2, name="João Lima", room="102"),
}


def build_task(
    task_id: int,
    kind: TaskKind = TaskKind.MEDICATION,
    *,
    resident_id: int = 1,
    scheduled_date: date = TODAY,
    scheduled_time: time = time(8, 0),
    status: TaskStatus = TaskStatus.PENDING,
    name: str | None = None,
    food_description: str | None = None,
    requires_confirmation: bool = False,
    annotation: str | None = None,
) -> ScheduledTask:
    executed = status != TaskStatus.PENDING
    template = TaskTemplate(
        template_id=task_id * 10,
        kind=kind,
        resident_id=resident_id,
        name=name or f"Item {task_id}",
        food_description=food_description,
        requires_confirmation=requires_confirmation,
    )
    return ScheduledTask(
        task_id=task_id,
        kind=kind,
        template_id=template.template_id,
        resident_id=resident_id,
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        executed_date=scheduled_date if executed else None,
        executed_time=scheduled_time if executed else None,
        status=status,
        staff_id=7 if executed else None,
        annotation=annotation,
        template=template,
        resident=RESIDENTS.get(resident_id),
    )


class FakeTaskStore:
    """内存存储替身：记录写入，可注入失败与阻塞"""

    def __init__(self, tasks: Sequence[ScheduledTask] = ()) -> None:
        self.rows: dict[int, ScheduledTask] = {t.task_id: t for t in tasks}
        self.hub = FeedHub()
        self.writes: list[tuple[TaskKind, int, TaskPatch]] = []
        self.fetch_calls = 0
        self.fetch_error: StoreError | None = None
        self.write_error: StoreError | None = None
        self.write_gate: asyncio.Event | None = None
        self.subscriptions: list[HubSubscription] = []

    def add(self, *tasks: ScheduledTask) -> "FakeTaskStore":
        for task in tasks:
            self.rows[task.task_id] = task
        return self

    async def fetch_tasks(
        self,
        kind: TaskKind,
        resident_ids: Sequence[int] | None = None,
    ) -> list[ScheduledTask]:
        self.fetch_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        return [
            t
            for t in self.rows.values()
            if t.kind == kind and (resident_ids is None or t.resident_id in resident_ids)
        ]

    async def update_task(self, kind: TaskKind, task_id: int, patch: TaskPatch) -> None:
        self.writes.append((kind, task_id, patch))
        if self.write_gate is not None:
            await self.write_gate.wait()
        if self.write_error is not None:
            raise self.write_error
        existing = self.rows.get(task_id)
        if existing is None:
            raise RowNotFoundError(task_id)
        self.rows[task_id] = existing.model_copy(update=patch.to_row())

    async def subscribe(self, kind: TaskKind) -> HubSubscription:
        subscription = await self.hub.subscribe(kind)
        self.subscriptions.append(subscription)
        return subscription

    async def ping(self) -> None:
        return None

    async def close(self) -> None:
        return None


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """固定时钟"""
    return lambda: FIXED_NOW


@pytest.fixture
def make_task() -> Callable[..., ScheduledTask]:
    return build_task


@pytest.fixture
def fake_store() -> FakeTaskStore:
    return FakeTaskStore()


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "test.db"


@pytest_asyncio.fixture
async def db_conn(tmp_db_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """提供已初始化的临时 SQLite 数据库连接"""
    from odara.core.store.sqlite_init import init_db

    conn = await aiosqlite.connect(str(tmp_db_path))
    await init_db(conn)
    yield conn
    await conn.close()
