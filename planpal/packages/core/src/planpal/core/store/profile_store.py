"""ProfileStore SQLite 实现

profiles 表由外部系统维护；聊天子系统只读取，
唯一的写操作是首次使用 Bot 时创建保留用户名的 Bot 资料。
"""

from datetime import UTC, datetime

import aiosqlite

from ..config import BOT_USERNAME
from ..models.message import Profile, bot_profile_for, is_bot_author


def profile_from_row(
    user_id: str,
    username: str | None,
    full_name: str | None,
    avatar_url: str | None,
) -> Profile:
    """profiles 行 -> Profile；保留用户名映射为固定 Bot 身份"""
    if username == BOT_USERNAME:
        return bot_profile_for(user_id)
    return Profile(
        id=user_id,
        display_name=full_name or "",
        avatar_url=avatar_url,
        username=username,
    )


class SqliteProfileStore:
    """ProfileStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get_profile(self, user_id: str) -> Profile | None:
        """根据用户 ID 查询资料；Bot 作者 ID 无需资料行即返回固定 Bot 身份"""
        if is_bot_author(user_id):
            return bot_profile_for(user_id)
        cursor = await self._conn.execute(
            "SELECT id, username, full_name, avatar_url FROM profiles WHERE id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return profile_from_row(row[0], row[1], row[2], row[3])

    async def get_profile_id_by_username(self, username: str) -> str | None:
        """根据用户名查询用户 ID"""
        cursor = await self._conn.execute(
            "SELECT id FROM profiles WHERE username = ? ORDER BY created_at LIMIT 1",
            (username,),
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def create_profile(self, profile: Profile, email: str | None = None) -> str:
        """创建资料；用户名已被占用时保留已有行

        Returns:
            最终生效的用户 ID（并发创建时可能是另一方写入的 ID）
        """
        await self._conn.execute(
            """
            INSERT OR IGNORE INTO profiles (id, username, full_name, avatar_url, email, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                profile.id,
                profile.username,
                profile.display_name,
                profile.avatar_url,
                email,
                datetime.now(UTC).isoformat(),
            ),
        )
        await self._conn.commit()

        if profile.username:
            winner = await self.get_profile_id_by_username(profile.username)
            if winner is not None:
                return winner
        return profile.id
