"""FastAPI lifespan 测试

测试内容：
1. 启动时按配置初始化本地存储、推送与页面登记表
2. 关闭时卸载页面
"""

from odara.core.store import FeedHub, SqliteTaskStore
from odara.gateway.main import create_app
from odara.gateway.services.screen_registry import ScreenRegistry


class TestLifespan:
    async def test_sqlite_mode_startup_and_shutdown(self, monkeypatch, tmp_path):
        db_path = tmp_path / "lifespan" / "odara.db"
        monkeypatch.setenv("ODARA_STORE_MODE", "sqlite")
        monkeypatch.setenv("ODARA_DB_PATH", str(db_path))

        app = create_app()
        async with app.router.lifespan_context(app):
            assert isinstance(app.state.store, SqliteTaskStore)
            assert isinstance(app.state.feed_hub, FeedHub)
            assert isinstance(app.state.screens, ScreenRegistry)
            assert app.state.store.hub is app.state.feed_hub
            assert db_path.exists()

            await app.state.screens.get_or_mount(7, "medication")
            assert len(app.state.screens) == 1

        assert len(app.state.screens) == 0
