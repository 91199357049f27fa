"""PlanPal Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

from collections.abc import Iterable
from pathlib import Path

import aiosqlite

from ..models.enums import SchemaVariant
from .group_store import SqliteGroupStore
from .message_store import SqliteMessageStore
from .profile_store import SqliteProfileStore
from .protocols import GroupStore, MessageStore, ProfileStore
from .sqlite_init import init_db


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.message_store: MessageStore = SqliteMessageStore(conn)
        self.profile_store: ProfileStore = SqliteProfileStore(conn)
        self.group_store: GroupStore = SqliteGroupStore(conn)


async def create_store_group(
    db_path: str,
    chat_tables: Iterable[SchemaVariant | str] | None = None,
) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径
        chat_tables: 需要创建的聊天表变体，None 时读取 PLANPAL_CHAT_TABLES

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn, chat_tables)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteMessageStore",
    "SqliteProfileStore",
    "SqliteGroupStore",
    "init_db",
    "MessageStore",
    "ProfileStore",
    "GroupStore",
]
