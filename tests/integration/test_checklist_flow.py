"""端到端：真实 SQLite 存储 + FeedHub + ChecklistScreen

覆盖：
1. 对话框打开期间其他终端的写入被本地确认覆盖（后写者胜）
2. 两个操作员页面通过推送互相看到写入
3. 必填状态带备注写入、取消不写入
4. 写入失败留下分歧标记，重新加载后恢复为存储中的数据
"""

import asyncio
from datetime import date, time

import pytest_asyncio
from odara.core.engine import TransitionOutcome
from odara.core.exceptions import StoreUnavailableError
from odara.core.models import (
    MEDICATION_POLICY,
    Resident,
    ScheduledTask,
    TaskKind,
    TaskPatch,
    TaskStatus,
    TaskTemplate,
)
from odara.core.screen import ChecklistScreen
from odara.core.store import FeedHub, SqliteTaskStore

TODAY = date(2025, 3, 10)


async def _eventually(predicate, attempts: int = 500) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest_asyncio.fixture
async def store(db_conn) -> SqliteTaskStore:
    store = SqliteTaskStore(db_conn, FeedHub())
    await store.add_resident(Resident(resident_id=1, name="Maria Souza", room="101"))
    await store.add_template(
        TaskTemplate(template_id=10, kind=TaskKind.MEDICATION, resident_id=1, name="Losartana")
    )
    for task_id, at in ((1, time(8, 0)), (2, time(20, 0))):
        await store.insert_task(
            ScheduledTask(
                task_id=task_id,
                kind=TaskKind.MEDICATION,
                template_id=10,
                resident_id=1,
                scheduled_date=TODAY,
                scheduled_time=at,
            )
        )
    return store


@pytest_asyncio.fixture
async def screen(store, clock):
    async with ChecklistScreen(MEDICATION_POLICY, store, operator_id=7, clock=clock) as screen:
        yield screen


class TestConcurrentWriters:
    async def test_local_confirm_overwrites_remote_write(self, store, screen):
        pending = asyncio.create_task(screen.request_transition(1, TaskStatus.PARTIAL))
        await screen.dialog.wait_until_open()

        # 另一终端在对话框打开期间写入
        await store.update_task(
            TaskKind.MEDICATION,
            1,
            TaskPatch(status=TaskStatus.COMPLETED, annotation="outro terminal", staff_id=9),
        )
        await _eventually(lambda: screen.cache.get(1).status == TaskStatus.COMPLETED)

        screen.dialog.confirm("Tomou metade")
        result = await pending

        assert result.outcome == TransitionOutcome.APPLIED
        row = await store.get_task(1)
        assert row.status == TaskStatus.PARTIAL
        assert row.annotation == "Tomou metade"
        assert row.staff_id == 7
        assert row.executed_date == TODAY
        assert row.executed_time == time(14, 37)

    async def test_second_operator_sees_write(self, store, screen, clock):
        async with ChecklistScreen(
            MEDICATION_POLICY, store, operator_id=9, clock=clock
        ) as other:
            result = await screen.request_transition(2, TaskStatus.COMPLETED)
            assert result.outcome == TransitionOutcome.APPLIED

            await _eventually(lambda: other.cache.get(2).status == TaskStatus.COMPLETED)
            assert other.cache.get(2).staff_id == 7
            assert other.view().groups[0].pending_count == 1


class TestAnnotatedStatuses:
    async def test_not_completed_then_cancel(self, store, screen):
        pending = asyncio.create_task(screen.request_transition(1, TaskStatus.NOT_COMPLETED))
        await screen.dialog.wait_until_open()
        assert screen.dialog.request.required is True
        screen.dialog.confirm("Recusou o comprimido")
        assert (await pending).outcome == TransitionOutcome.APPLIED

        pending = asyncio.create_task(screen.request_transition(2, TaskStatus.PARTIAL))
        await screen.dialog.wait_until_open()
        screen.dialog.cancel()
        assert (await pending).outcome == TransitionOutcome.CANCELLED

        first = await store.get_task(1)
        second = await store.get_task(2)
        assert first.status == TaskStatus.NOT_COMPLETED
        assert first.annotation == "Recusou o comprimido"
        assert second.status == TaskStatus.PENDING
        assert second.staff_id is None


class TestWriteFailure:
    async def test_divergent_until_reload(self, store, screen, monkeypatch):
        async def failing_update(kind, task_id, patch):
            raise StoreUnavailableError("connection reset")

        monkeypatch.setattr(store, "update_task", failing_update)
        result = await screen.request_transition(1, TaskStatus.COMPLETED)

        assert result.outcome == TransitionOutcome.WRITE_FAILED
        assert screen.cache.get(1).status == TaskStatus.COMPLETED
        assert 1 in screen.cache.divergent_ids
        assert screen.notifications.recent()[-1].message == "Erro ao atualizar status"

        monkeypatch.undo()
        assert await screen.load() is True
        assert screen.cache.get(1).status == TaskStatus.PENDING
        assert screen.cache.divergent_ids == frozenset()
