"""全局 pytest 配置 -- 隔离环境变量 + 临时 SQLite 数据库路径"""

from pathlib import Path

import pytest
import pytest_asyncio


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """关闭 Logfire 上报，清除预配置的 Bot 用户 ID"""
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")
    monkeypatch.delenv("PLANPAL_BOT_USER_ID", raising=False)


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "test.db"
