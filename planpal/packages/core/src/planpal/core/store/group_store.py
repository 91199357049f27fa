"""GroupStore SQLite 实现

成员校验与 Bot 上下文读取。create_* 方法供 CLI 初始化与测试造数使用，
群组 CRUD 的正式入口在外部系统。
"""

import json
from collections.abc import Sequence
from datetime import UTC, datetime

import aiosqlite
import structlog
from ulid import ULID

from ..config import CONTEXT_EVENT_LIMIT, CONTEXT_POLL_LIMIT
from ..exceptions import StoreError
from ..models.group import Group, GroupEvent, GroupPoll

log = structlog.get_logger()


class SqliteGroupStore:
    """GroupStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_group(self, group: Group) -> None:
        """创建群组记录"""
        await self._conn.execute(
            """
            INSERT INTO groups (id, name, description, group_type, members, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                group.id,
                group.name,
                group.description,
                group.group_type,
                json.dumps(group.members),
                datetime.now(UTC).isoformat(),
            ),
        )
        await self._conn.commit()

    async def get_group(self, group_id: str) -> Group | None:
        """查询未删除的群组

        Raises:
            StoreError: 查询失败
        """
        try:
            cursor = await self._conn.execute(
                """
                SELECT id, name, description, group_type, members
                FROM groups WHERE id = ? AND deleted_at IS NULL
                """,
                (group_id,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            log.error("group_fetch_failed", group_id=group_id, error=str(e))
            raise StoreError("Failed to fetch group") from e
        if row is None:
            return None
        members = json.loads(row[4]) if row[4] else []
        return Group(
            id=row[0],
            name=row[1],
            description=row[2],
            group_type=row[3],
            members=members if isinstance(members, list) else [],
        )

    async def soft_delete_group(self, group_id: str) -> None:
        """标记群组已删除"""
        await self._conn.execute(
            "UPDATE groups SET deleted_at = ? WHERE id = ?",
            (datetime.now(UTC).isoformat(), group_id),
        )
        await self._conn.commit()

    async def create_event(self, event: GroupEvent) -> None:
        """创建群组事件"""
        await self._conn.execute(
            """
            INSERT INTO events (id, group_id, title, description, date_time)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                event.id,
                event.group_id,
                event.title,
                event.description,
                event.date_time.isoformat() if event.date_time else None,
            ),
        )
        await self._conn.commit()

    async def list_events(
        self,
        group_id: str,
        limit: int = CONTEXT_EVENT_LIMIT,
    ) -> list[GroupEvent]:
        """按 date_time 正序查询群组事件"""
        cursor = await self._conn.execute(
            """
            SELECT id, group_id, title, description, date_time
            FROM events WHERE group_id = ?
            ORDER BY date_time ASC LIMIT ?
            """,
            (group_id, limit),
        )
        rows = await cursor.fetchall()
        return [
            GroupEvent(
                id=row[0],
                group_id=row[1],
                title=row[2],
                description=row[3] or "",
                date_time=datetime.fromisoformat(row[4]) if row[4] else None,
            )
            for row in rows
        ]

    async def create_poll(
        self,
        event_id: str,
        question: str,
        options: Sequence[str] = (),
    ) -> GroupPoll:
        """创建投票及其选项"""
        poll_id = str(ULID())
        await self._conn.execute(
            "INSERT INTO polls (id, event_id, question, created_at) VALUES (?, ?, ?, ?)",
            (poll_id, event_id, question, datetime.now(UTC).isoformat()),
        )
        await self._conn.executemany(
            "INSERT INTO poll_options (id, poll_id, label) VALUES (?, ?, ?)",
            [(str(ULID()), poll_id, label) for label in options],
        )
        await self._conn.commit()
        return GroupPoll(
            id=poll_id,
            event_id=event_id,
            question=question,
            option_count=len(options),
        )

    async def list_polls(
        self,
        event_ids: Sequence[str],
        limit: int = CONTEXT_POLL_LIMIT,
    ) -> list[GroupPoll]:
        """查询一组事件下的投票（带选项数），最多 limit 条"""
        if not event_ids:
            return []
        placeholders = ", ".join("?" for _ in event_ids)
        cursor = await self._conn.execute(
            f"""
            SELECT p.id, p.event_id, p.question,
                   (SELECT COUNT(*) FROM poll_options o WHERE o.poll_id = p.id)
            FROM polls p
            WHERE p.event_id IN ({placeholders})
            ORDER BY p.created_at ASC, p.rowid ASC LIMIT ?
            """,
            (*event_ids, limit),
        )
        rows = await cursor.fetchall()
        return [
            GroupPoll(id=row[0], event_id=row[1], question=row[2], option_count=row[3])
            for row in rows
        ]
