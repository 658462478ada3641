"""CLI 入口模块 -- python -m chaser.core <command>

支持的命令：
  init-db   创建数据库表结构
  upcoming  列出即将发送的 chaser
"""

import asyncio
import sys

from .config import UPCOMING_CHASERS_LIMIT, get_db_path


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print("用法: python -m chaser.core <command>")
        print("命令:")
        print("  init-db   创建数据库表结构")
        print("  upcoming  列出即将发送的 chaser")
        sys.exit(1)

    command = sys.argv[1]

    if command == "init-db":
        asyncio.run(init_database())
    elif command == "upcoming":
        asyncio.run(show_upcoming())
    else:
        print(f"未知命令: {command}")
        print("可用命令: init-db, upcoming")
        sys.exit(1)


async def init_database() -> None:
    """创建数据库（表已存在时不做任何修改）"""
    from .store import create_store_group

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")

    store_group = await create_store_group(db_path)
    await store_group.conn.close()
    print("初始化完成")


async def show_upcoming() -> None:
    """打印下一批 pending chaser"""
    from .store import create_store_group

    store_group = await create_store_group(get_db_path())
    try:
        rows = await store_group.queue_store.list_upcoming(UPCOMING_CHASERS_LIMIT)
    finally:
        await store_group.conn.close()

    if not rows:
        print("没有待发送的 chaser")
        return
    for entry, task in rows:
        print(
            f"{entry.scheduled_at.isoformat()}  tier={int(entry.escalation_tier)}  "
            f"{task.title}  -> {entry.recipient_email}"
        )


if __name__ == "__main__":
    main()
