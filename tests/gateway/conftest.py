"""gateway 测试配置 -- 手动初始化 app.state（绕过 lifespan）+ httpx AsyncClient"""

import os
from collections.abc import AsyncGenerator
from datetime import time
from pathlib import Path

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from odara.core.config import now_local
from odara.core.models import Resident, ScheduledTask, TaskKind, TaskTemplate
from odara.core.store import FeedHub, SqliteTaskStore, create_sqlite_store


async def _seed(store: SqliteTaskStore) -> None:
    today = now_local().date()
    await store.add_resident(Resident(resident_id=1, name="Maria Souza", room="101"))
    templates = [
        TaskTemplate(template_id=10, kind=TaskKind.MEDICATION, resident_id=1, name="Losartana"),
        TaskTemplate(template_id=11, kind=TaskKind.MEDICATION, resident_id=1, name="Dipirona"),
        TaskTemplate(template_id=20, kind=TaskKind.MEAL, resident_id=1, name="Almoço"),
    ]
    for template in templates:
        await store.add_template(template)
    for task_id, template in ((1, templates[0]), (2, templates[1]), (3, templates[2])):
        await store.insert_task(
            ScheduledTask(
                task_id=task_id,
                kind=template.kind,
                template_id=template.template_id,
                resident_id=1,
                scheduled_date=today,
                scheduled_time=time(8 + task_id, 0),
            )
        )


@pytest_asyncio.fixture
async def test_app(tmp_path: Path):
    """创建测试用 FastAPI app（本地 SQLite 存储 + 种子数据）"""
    os.environ["ODARA_DB_PATH"] = str(tmp_path / "test.db")

    from odara.gateway.main import create_app
    from odara.gateway.services.screen_registry import ScreenRegistry

    app = create_app()

    feed_hub = FeedHub()
    store = await create_sqlite_store(str(tmp_path / "test.db"), feed_hub)
    await _seed(store)
    app.state.store = store
    app.state.feed_hub = feed_hub
    app.state.screens = ScreenRegistry(store)

    yield app

    await app.state.screens.close_all()
    await store.close()
    os.environ.pop("ODARA_DB_PATH", None)


@pytest_asyncio.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
        headers={"X-Staff-Id": "7"},
    ) as ac:
        yield ac
