"""packages/core 测试配置 -- 核心层 fixture"""

from collections.abc import AsyncGenerator
from pathlib import Path

import aiosqlite
import pytest_asyncio
from planpal.core.models import Group
from planpal.core.store import StoreGroup, create_store_group


@pytest_asyncio.fixture
async def core_db_path(tmp_path: Path) -> Path:
    """核心层临时数据库路径"""
    return tmp_path / "core_test.db"


@pytest_asyncio.fixture
async def core_db(core_db_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """核心层已初始化数据库连接（仅变体 A）"""
    from planpal.core.store.sqlite_init import init_db

    conn = await aiosqlite.connect(str(core_db_path))
    conn.row_factory = aiosqlite.Row
    await init_db(conn, ["chat_messages"])
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def store_group(core_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """变体 A 的 StoreGroup"""
    sg = await create_store_group(str(core_db_path), ["chat_messages"])
    yield sg
    await sg.conn.close()


@pytest_asyncio.fixture
async def legacy_store_group(tmp_path: Path) -> AsyncGenerator[StoreGroup, None]:
    """只有 messages 表（变体 B）的 StoreGroup"""
    sg = await create_store_group(str(tmp_path / "legacy.db"), ["messages"])
    yield sg
    await sg.conn.close()


@pytest_asyncio.fixture
async def group(store_group: StoreGroup) -> Group:
    """包含 alice / bob 两名成员的群组"""
    g = Group(
        id="6f1c2a52-5d0e-4b8e-9a55-0c1f3c7f9a01",
        name="Weekend Crew",
        description="Friday night plans",
        group_type="friends",
        members=["alice", "bob"],
    )
    await store_group.group_store.create_group(g)
    return g
