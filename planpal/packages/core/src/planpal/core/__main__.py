"""CLI 入口模块 -- python -m planpal.core <command>

支持的命令：
  init-db                          创建表与索引（按 PLANPAL_CHAT_TABLES）
  detect-schema                    输出当前可用的聊天表变体
  seed-group <name> <user_id>...   创建一个本地开发用群组
"""

import asyncio
import sys

from .config import get_chat_tables, get_db_path

_USAGE = """用法: python -m planpal.core <command>
命令:
  init-db                          创建表与索引
  detect-schema                    输出当前可用的聊天表变体
  seed-group <name> <user_id>...   创建本地开发用群组"""


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print(_USAGE)
        sys.exit(1)

    command = sys.argv[1]

    if command == "init-db":
        asyncio.run(init_database())
    elif command == "detect-schema":
        asyncio.run(detect_schema())
    elif command == "seed-group" and len(sys.argv) >= 4:
        asyncio.run(seed_group(sys.argv[2], sys.argv[3:]))
    else:
        print(f"未知命令或参数不足: {' '.join(sys.argv[1:])}")
        print(_USAGE)
        sys.exit(1)


async def init_database() -> None:
    """初始化数据库"""
    from .store import create_store_group
    from .store.sqlite_init import verify_wal_mode

    db_path = get_db_path()
    print(f"数据库路径: {db_path}")
    print(f"聊天表: {', '.join(get_chat_tables())}")

    store_group = await create_store_group(db_path)
    try:
        wal = await verify_wal_mode(store_group.conn)
        print(f"初始化完成，WAL 模式: {'on' if wal else 'off'}")
    finally:
        await store_group.conn.close()


async def detect_schema() -> None:
    """探测聊天表变体"""
    from .exceptions import SchemaDivergenceError
    from .store import create_store_group

    store_group = await create_store_group(get_db_path(), chat_tables=[])
    try:
        variant = await store_group.message_store.detect_variant()
        print(f"可用变体: {variant.value}")
    except SchemaDivergenceError:
        print("未找到可用的聊天表（chat_messages / messages）")
        sys.exit(2)
    finally:
        await store_group.conn.close()


async def seed_group(name: str, members: list[str]) -> None:
    """创建群组并输出其 ID"""
    import uuid

    from .models.group import Group
    from .store import create_store_group

    store_group = await create_store_group(get_db_path())
    try:
        group = Group(id=str(uuid.uuid4()), name=name, members=members)
        await store_group.group_store.create_group(group)
        print(f"群组已创建: {group.id}")
    finally:
        await store_group.conn.close()


if __name__ == "__main__":
    main()
