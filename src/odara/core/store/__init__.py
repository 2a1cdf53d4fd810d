"""Odara Core Store -- 任务存储客户端

提供工厂函数按配置创建 SQLite 或 REST 后端。
"""

from pathlib import Path

import aiosqlite

from ..config import StoreConfig
from .feed_hub import FeedHub, HubSubscription
from .protocols import FeedSubscription, TaskStoreClient
from .rest_store import RestFeedSubscription, RestTaskStore
from .sqlite_init import init_db
from .sqlite_store import SqliteTaskStore


async def create_sqlite_store(db_path: str, hub: FeedHub | None = None) -> SqliteTaskStore:
    """创建 SQLite 存储

    Args:
        db_path: SQLite 数据库文件路径
        hub: 变更广播器，None 时新建

    Returns:
        已初始化表结构的 SqliteTaskStore
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    await init_db(conn)

    return SqliteTaskStore(conn, hub)


async def create_store(config: StoreConfig) -> SqliteTaskStore | RestTaskStore:
    """按配置创建存储客户端"""
    if config.mode == "rest":
        return RestTaskStore(config)
    return await create_sqlite_store(config.db_path)


__all__ = [
    "FeedHub",
    "HubSubscription",
    "FeedSubscription",
    "TaskStoreClient",
    "SqliteTaskStore",
    "RestTaskStore",
    "RestFeedSubscription",
    "init_db",
    "create_sqlite_store",
    "create_store",
]
