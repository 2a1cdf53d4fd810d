"""SqliteTaskStore 单元测试

测试内容：
1. 批量加载 join 模板与住户，按计划时间排序
2. 部分更新只写显式字段，幂等，并推送 UPDATE 事件
3. 行不存在时抛出 RowNotFoundError
4. insert / delete 推送事件
"""

import asyncio
from datetime import date, time

import pytest
import pytest_asyncio
from odara.core.exceptions import RowNotFoundError
from odara.core.models import (
    FeedOperation,
    Resident,
    ScheduledTask,
    TaskKind,
    TaskPatch,
    TaskStatus,
    TaskTemplate,
)
from odara.core.store import SqliteTaskStore, create_sqlite_store


async def _seed(store: SqliteTaskStore) -> None:
    await store.add_resident(Resident(resident_id=1, name="Maria Souza", room="101"))
    await store.add_template(
        TaskTemplate(
            template_id=10,
            kind=TaskKind.MEDICATION,
            resident_id=1,
            name="Losartana",
            dosage="50mg",
            dose="1 comprimido",
            recurrence="12/12h",
        )
    )
    await store.add_template(
        TaskTemplate(
            template_id=20,
            kind=TaskKind.MEAL,
            resident_id=1,
            name="Almoço",
            food_description="Arroz e feijão",
            requires_confirmation=True,
        )
    )
    for task_id, kind, template_id, at in (
        (1, TaskKind.MEDICATION, 10, time(20, 0)),
        (2, TaskKind.MEDICATION, 10, time(8, 0)),
        (3, TaskKind.MEAL, 20, time(12, 0)),
    ):
        await store.insert_task(
            ScheduledTask(
                task_id=task_id,
                kind=kind,
                template_id=template_id,
                resident_id=1,
                scheduled_date=date(2025, 3, 10),
                scheduled_time=at,
            )
        )


def _completed_patch() -> TaskPatch:
    return TaskPatch(
        status=TaskStatus.COMPLETED,
        annotation=None,
        executed_date=date(2025, 3, 10),
        executed_time=time(8, 5),
        staff_id=7,
    )


@pytest_asyncio.fixture
async def store(db_conn) -> SqliteTaskStore:
    store = SqliteTaskStore(db_conn)
    await _seed(store)
    return store


class TestFetch:
    async def test_fetch_joins_and_orders(self, store: SqliteTaskStore):
        tasks = await store.fetch_tasks(TaskKind.MEDICATION)
        assert [t.task_id for t in tasks] == [2, 1]
        assert tasks[0].template.name == "Losartana"
        assert tasks[0].resident.name == "Maria Souza"
        assert tasks[0].is_pending

    async def test_fetch_by_resident(self, store: SqliteTaskStore):
        assert await store.fetch_tasks(TaskKind.MEDICATION, resident_ids=[2]) == []
        assert len(await store.fetch_tasks(TaskKind.MEDICATION, resident_ids=[1])) == 2

    async def test_template_flags_roundtrip(self, store: SqliteTaskStore):
        [meal] = await store.fetch_tasks(TaskKind.MEAL)
        assert meal.template.requires_confirmation is True
        assert meal.template.food_description == "Arroz e feijão"


class TestUpdate:
    async def test_partial_update_is_idempotent(self, store: SqliteTaskStore):
        patch = _completed_patch()
        await store.update_task(TaskKind.MEDICATION, 2, patch)
        first = await store.get_task(2)
        await store.update_task(TaskKind.MEDICATION, 2, patch)
        second = await store.get_task(2)

        assert first == second
        assert second.status == TaskStatus.COMPLETED
        assert second.executed_time == time(8, 5)
        assert second.staff_id == 7
        # 未出现在 patch 中的字段不变
        assert second.scheduled_time == time(8, 0)

    async def test_update_missing_row(self, store: SqliteTaskStore):
        with pytest.raises(RowNotFoundError):
            await store.update_task(TaskKind.MEDICATION, 99, _completed_patch())

    async def test_update_wrong_kind(self, store: SqliteTaskStore):
        """行存在但属于其他任务类型，视为不存在"""
        with pytest.raises(RowNotFoundError):
            await store.update_task(TaskKind.MEAL, 2, _completed_patch())

    async def test_update_publishes_event(self, store: SqliteTaskStore):
        sub = await store.subscribe(TaskKind.MEDICATION)
        await store.update_task(TaskKind.MEDICATION, 2, _completed_patch())

        event = await asyncio.wait_for(anext(sub), timeout=1)
        assert event.operation == FeedOperation.UPDATE
        assert event.task_id == 2
        assert event.row["status"] == "completed"
        await sub.close()


class TestInsertDelete:
    async def test_insert_publishes_joined_row(self, store: SqliteTaskStore):
        sub = await store.subscribe(TaskKind.MEDICATION)
        await store.insert_task(
            ScheduledTask(
                task_id=4,
                kind=TaskKind.MEDICATION,
                template_id=10,
                resident_id=1,
                scheduled_date=date(2025, 3, 11),
                scheduled_time=time(8, 0),
            )
        )
        event = await asyncio.wait_for(anext(sub), timeout=1)
        assert event.operation == FeedOperation.INSERT
        assert event.row["template"]["name"] == "Losartana"
        await sub.close()

    async def test_delete(self, store: SqliteTaskStore):
        sub = await store.subscribe(TaskKind.MEDICATION)
        assert await store.delete_task(TaskKind.MEDICATION, 1) is True
        assert await store.delete_task(TaskKind.MEDICATION, 1) is False
        event = await asyncio.wait_for(anext(sub), timeout=1)
        assert event.operation == FeedOperation.DELETE
        assert event.row == {"task_id": 1}
        await sub.close()


class TestCreateStore:
    async def test_create_sqlite_store_creates_directory(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "odara.db"
        store = await create_sqlite_store(str(db_path))
        try:
            assert db_path.exists()
            await store.ping()
        finally:
            await store.close()
