"""SQLite 数据库初始化

PRAGMA 配置 + 表 DDL + 索引创建。
聊天表按变体可选创建：生产中可能只存在其中一种，或两者并存。
"""

from collections.abc import Iterable

import aiosqlite

from ..config import get_chat_tables
from ..models.enums import SchemaVariant

# profiles 表 DDL（外部维护，这里只读 + Bot 身份创建）
_PROFILES_DDL = """
CREATE TABLE IF NOT EXISTS profiles (
    id          TEXT PRIMARY KEY,
    username    TEXT,
    full_name   TEXT NOT NULL DEFAULT '',
    avatar_url  TEXT,
    email       TEXT,
    created_at  TEXT NOT NULL
);
"""

_PROFILES_INDEXES = [
    # 用户名唯一（仅对非 NULL 值生效），并发创建 Bot 身份时只有一行胜出
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_profiles_username "
        "ON profiles(username) WHERE username IS NOT NULL;"
    ),
]

# groups 表 DDL（members 为 JSON 数组）
_GROUPS_DDL = """
CREATE TABLE IF NOT EXISTS groups (
    id           TEXT PRIMARY KEY,
    name         TEXT NOT NULL DEFAULT '',
    description  TEXT NOT NULL DEFAULT '',
    group_type   TEXT NOT NULL DEFAULT 'personal',
    members      TEXT NOT NULL DEFAULT '[]',
    created_at   TEXT NOT NULL,
    deleted_at   TEXT
);
"""

_EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS events (
    id           TEXT PRIMARY KEY,
    group_id     TEXT NOT NULL,
    title        TEXT NOT NULL,
    description  TEXT NOT NULL DEFAULT '',
    date_time    TEXT,

    FOREIGN KEY (group_id) REFERENCES groups(id)
);
"""

_POLLS_DDL = """
CREATE TABLE IF NOT EXISTS polls (
    id          TEXT PRIMARY KEY,
    event_id    TEXT NOT NULL,
    question    TEXT NOT NULL,
    created_at  TEXT NOT NULL,

    FOREIGN KEY (event_id) REFERENCES events(id)
);
"""

_POLL_OPTIONS_DDL = """
CREATE TABLE IF NOT EXISTS poll_options (
    id       TEXT PRIMARY KEY,
    poll_id  TEXT NOT NULL,
    label    TEXT NOT NULL,

    FOREIGN KEY (poll_id) REFERENCES polls(id)
);
"""

_GROUP_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_events_group_date ON events(group_id, date_time);",
    "CREATE INDEX IF NOT EXISTS idx_polls_event_id ON polls(event_id);",
    "CREATE INDEX IF NOT EXISTS idx_poll_options_poll_id ON poll_options(poll_id);",
]

# 变体 A: chat_messages
_CHAT_MESSAGES_DDL = """
CREATE TABLE IF NOT EXISTS chat_messages (
    id            TEXT PRIMARY KEY,
    group_id      TEXT NOT NULL,
    user_id       TEXT,
    message       TEXT NOT NULL,
    message_type  TEXT NOT NULL DEFAULT 'text',
    created_at    TEXT NOT NULL
);
"""

# 变体 B: messages
_MESSAGES_DDL = """
CREATE TABLE IF NOT EXISTS messages (
    id              TEXT PRIMARY KEY,
    group_id        TEXT NOT NULL,
    user_id         TEXT,
    content         TEXT NOT NULL DEFAULT '',
    attachment_url  TEXT,
    created_at      TEXT NOT NULL
);
"""

_CHAT_TABLE_DDL: dict[SchemaVariant, tuple[str, list[str]]] = {
    SchemaVariant.CHAT_MESSAGES: (
        _CHAT_MESSAGES_DDL,
        [
            # 分页 / recent 查询按 (created_at, id) 排序
            (
                "CREATE INDEX IF NOT EXISTS idx_chat_messages_group_ts "
                "ON chat_messages(group_id, created_at, id);"
            ),
        ],
    ),
    SchemaVariant.MESSAGES: (
        _MESSAGES_DDL,
        [
            (
                "CREATE INDEX IF NOT EXISTS idx_messages_group_ts "
                "ON messages(group_id, created_at, id);"
            ),
        ],
    ),
}


async def init_db(
    conn: aiosqlite.Connection,
    chat_tables: Iterable[SchemaVariant | str] | None = None,
) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
        chat_tables: 需要创建的聊天表变体，None 时读取 PLANPAL_CHAT_TABLES
    """
    variants = [
        SchemaVariant(name)
        for name in (chat_tables if chat_tables is not None else get_chat_tables())
    ]

    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    for ddl in (_PROFILES_DDL, _GROUPS_DDL, _EVENTS_DDL, _POLLS_DDL, _POLL_OPTIONS_DDL):
        await conn.execute(ddl)

    indexes = _PROFILES_INDEXES + _GROUP_INDEXES
    for variant in variants:
        ddl, variant_indexes = _CHAT_TABLE_DDL[variant]
        await conn.execute(ddl)
        indexes = indexes + variant_indexes

    # 创建索引
    for idx_sql in indexes:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
