"""SQLite 数据库初始化

PRAGMA 配置 + 三张表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# residents 表 DDL
_RESIDENTS_DDL = """
CREATE TABLE IF NOT EXISTS residents (
    resident_id  INTEGER PRIMARY KEY,
    name         TEXT NOT NULL,
    room         TEXT
);
"""

# task_templates 表 DDL
_TEMPLATES_DDL = """
CREATE TABLE IF NOT EXISTS task_templates (
    template_id            INTEGER PRIMARY KEY,
    kind                   TEXT NOT NULL,
    resident_id            INTEGER NOT NULL,
    name                   TEXT NOT NULL,
    recurrence             TEXT NOT NULL DEFAULT '',
    dosage                 TEXT,
    dose                   TEXT,
    meal_type              TEXT,
    food_description       TEXT,
    unit                   TEXT,
    requires_confirmation  INTEGER NOT NULL DEFAULT 0,

    FOREIGN KEY (resident_id) REFERENCES residents(resident_id)
);
"""

_TEMPLATES_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_templates_kind ON task_templates(kind);",
]

# scheduled_tasks 表 DDL
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS scheduled_tasks (
    task_id         INTEGER PRIMARY KEY,
    kind            TEXT NOT NULL,
    template_id     INTEGER NOT NULL,
    resident_id     INTEGER NOT NULL,
    scheduled_date  TEXT NOT NULL,
    scheduled_time  TEXT NOT NULL,
    executed_date   TEXT,
    executed_time   TEXT,
    status          TEXT NOT NULL DEFAULT 'pending',
    staff_id        INTEGER,
    annotation      TEXT,

    FOREIGN KEY (template_id) REFERENCES task_templates(template_id),
    FOREIGN KEY (resident_id) REFERENCES residents(resident_id)
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_kind_schedule "
    "ON scheduled_tasks(kind, scheduled_date, scheduled_time);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_resident ON scheduled_tasks(resident_id);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON scheduled_tasks(status);",
]


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    await conn.execute(_RESIDENTS_DDL)
    await conn.execute(_TEMPLATES_DDL)
    await conn.execute(_TASKS_DDL)

    # 创建索引
    for idx_sql in _TEMPLATES_INDEXES + _TASKS_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()
