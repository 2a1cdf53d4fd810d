"""CLI 入口模块 -- python -m odara.core <command>

支持的命令：
  init-db             创建本地 SQLite 表结构
  checklist <kind>    打印今天的检查清单（medication / meal / measurement）
  serve               启动 HTTP 网关（ODARA_HOST / ODARA_PORT）
"""

import asyncio
import sys

from .config import get_db_path
from .exceptions import UnknownTaskKindError
from .models.policy import POLICIES, TaskKindPolicy, get_policy

_USAGE = """用法: python -m odara.core <command>
命令:
  init-db             创建本地 SQLite 表结构
  checklist <kind>    打印今天的检查清单
  serve               启动 HTTP 网关"""


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print(_USAGE)
        sys.exit(1)

    command = sys.argv[1]

    if command == "init-db":
        asyncio.run(init_database())
    elif command == "checklist":
        if len(sys.argv) < 3:
            print(f"用法: python -m odara.core checklist <{'|'.join(POLICIES)}>")
            sys.exit(1)
        try:
            policy = get_policy(sys.argv[2])
        except UnknownTaskKindError as e:
            print(str(e))
            sys.exit(1)
        if not asyncio.run(print_checklist(policy)):
            sys.exit(2)
    elif command == "serve":
        serve()
    else:
        print(f"未知命令: {command}")
        print("可用命令: init-db, checklist, serve")
        sys.exit(1)


async def init_database() -> None:
    """创建数据库文件与表结构"""
    from .store import create_sqlite_store

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")
    store = await create_sqlite_store(db_path)
    await store.close()
    print("初始化完成")


async def print_checklist(policy: TaskKindPolicy) -> bool:
    """加载并按日期分组打印今天的任务"""
    from .config import load_store_config
    from .screen import ChecklistScreen
    from .store import create_store

    store = await create_store(load_store_config())
    # 只读查看，不会写入状态
    screen = ChecklistScreen(policy, store, operator_id=0)
    try:
        if not await screen.load():
            print(screen.load_error)
            return False
        view = screen.view()
        print(f"{policy.title}: {view.total} registro(s)")
        for group in view.groups:
            print(f"\n{group.date.isoformat()}  ({group.pending_count} pendente(s))")
            for task in group.tasks:
                resident = task.resident.name if task.resident else f"#{task.resident_id}"
                line = (
                    f"  {task.scheduled_time.strftime('%H:%M')}  {task.display_name:<24} "
                    f"{resident:<20} {policy.label(task.status)}"
                )
                if task.annotation:
                    line += f"  -- {task.annotation}"
                print(line)
        return True
    finally:
        await store.close()


def serve() -> None:
    """以 uvicorn 运行网关"""
    import uvicorn

    from .config import get_server_address

    host, port = get_server_address()
    uvicorn.run("odara.gateway.main:app", host=host, port=port)


if __name__ == "__main__":
    main()
