"""MessageStore SQLite 实现

负责消息的持久化与查询，拥有排序与分页语义：
- 组内全序为 (created_at, id)
- 分页先按倒序取一页再反转，保证页内按时间正序
- 存储层异常统一包装为 StoreError，不返回部分结果

变体差异全部委托给 schema 模块，这里只处理 SchemaVariant。
"""

from datetime import UTC, datetime, timedelta

import aiosqlite
import structlog
from ulid import ULID

from ..config import (
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    MESSAGE_MAX_LENGTH,
    MESSAGE_PREVIEW_LENGTH,
    RECENT_WINDOW_HOURS,
)
from ..exceptions import ChatValidationError, SchemaDivergenceError, StoreError
from ..models.enums import MessageKind, SchemaVariant
from ..models.message import ChatMessage, MessagePage, Profile, bot_profile_for, is_bot_author
from .profile_store import profile_from_row
from .schema import format_timestamp, from_row, layout_for, to_row

log = structlog.get_logger()


def validate_body(body: str) -> str:
    """校验正文长度 1..MESSAGE_MAX_LENGTH，拒绝纯空白"""
    if not isinstance(body, str) or not body.strip():
        raise ChatValidationError("Message body must not be empty", field="message")
    if len(body) > MESSAGE_MAX_LENGTH:
        raise ChatValidationError(
            f"Message body must be at most {MESSAGE_MAX_LENGTH} characters",
            field="message",
        )
    return body


def validate_kind(kind: MessageKind | str) -> MessageKind:
    try:
        return MessageKind(kind)
    except ValueError as e:
        raise ChatValidationError(f"Unknown message type: {kind}", field="message_type") from e


def validate_page(limit: int, offset: int) -> None:
    if not 1 <= limit <= MAX_PAGE_LIMIT:
        raise ChatValidationError(
            f"limit must be between 1 and {MAX_PAGE_LIMIT}", field="limit"
        )
    if offset < 0:
        raise ChatValidationError("offset must be >= 0", field="offset")


class SqliteMessageStore:
    """MessageStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def detect_variant(self) -> SchemaVariant:
        """探测当前可用的聊天表变体

        先对变体 A 做一次轻量查询，失败则使用变体 B。

        Raises:
            SchemaDivergenceError: 两种变体均不可用
        """
        try:
            await self._check_table(SchemaVariant.CHAT_MESSAGES)
            return SchemaVariant.CHAT_MESSAGES
        except aiosqlite.Error as e:
            log.info("chat_variant_check_failed", table="chat_messages", error=str(e))

        try:
            await self._check_table(SchemaVariant.MESSAGES)
            return SchemaVariant.MESSAGES
        except aiosqlite.Error as e:
            log.error("chat_variant_check_failed", table="messages", error=str(e))
            raise SchemaDivergenceError() from e

    async def _check_table(self, variant: SchemaVariant) -> None:
        cursor = await self._conn.execute(
            f"SELECT id FROM {layout_for(variant).table} LIMIT 1"
        )
        await cursor.fetchone()

    async def send(
        self,
        group_id: str,
        author_id: str | None,
        body: str,
        kind: MessageKind | str = MessageKind.TEXT,
        *,
        variant: SchemaVariant | None = None,
    ) -> ChatMessage:
        """持久化一条消息

        Args:
            group_id: 群组 ID
            author_id: 作者 ID，None 表示系统通知
            body: 正文（attachment 类型时为附件 URL）
            kind: 消息类型
            variant: 目标变体，None 时探测

        Returns:
            已存储的消息（附带尽力获取的作者资料）

        Raises:
            ChatValidationError: 正文或类型不合法
            StoreError: 写入失败
        """
        body = validate_body(body)
        kind = validate_kind(kind)
        message = ChatMessage(
            id=str(ULID()),
            group_id=group_id,
            author_id=author_id,
            body=body,
            kind=kind,
            created_at=datetime.now(UTC),
            attachment_url=body if kind == MessageKind.ATTACHMENT else None,
        )

        if variant is None:
            variant = await self.detect_variant()
        row = to_row(message, variant)
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)

        try:
            await self._conn.execute(
                f"INSERT INTO {layout_for(variant).table} ({columns}) VALUES ({placeholders})",
                tuple(row.values()),
            )
            await self._conn.commit()
        except aiosqlite.Error as e:
            log.error(
                "message_send_failed",
                group_id=group_id,
                table=layout_for(variant).table,
                error=str(e),
            )
            raise StoreError("Failed to send message") from e

        log.debug(
            "message_stored",
            group_id=group_id,
            message_id=message.id,
            kind=kind.value,
            table=layout_for(variant).table,
            preview=body[:MESSAGE_PREVIEW_LENGTH],
        )
        profile = await self._load_profile(author_id)
        return message.model_copy(update={"author_profile": profile})

    async def list_messages(
        self,
        group_id: str,
        limit: int = DEFAULT_PAGE_LIMIT,
        offset: int = 0,
        *,
        variant: SchemaVariant | None = None,
    ) -> MessagePage:
        """分页查询，页内按时间正序

        offset 从最新消息开始计数：offset=0 返回最新的 limit 条。
        """
        validate_page(limit, offset)
        if variant is None:
            variant = await self.detect_variant()

        try:
            rows = await self._select(
                variant,
                "WHERE m.group_id = ? ORDER BY m.created_at DESC, m.id DESC LIMIT ? OFFSET ?",
                (group_id, limit, offset),
            )
        except aiosqlite.Error as e:
            log.error("message_list_failed", group_id=group_id, error=str(e))
            raise StoreError("Failed to fetch messages") from e

        messages = [self._row_to_message(row, variant) for row in reversed(rows)]
        return MessagePage(
            messages=messages,
            count=len(messages),
            limit=limit,
            offset=offset,
        )

    async def list_recent(
        self,
        group_id: str,
        *,
        now: datetime | None = None,
        variant: SchemaVariant | None = None,
    ) -> list[ChatMessage]:
        """查询最近 RECENT_WINDOW_HOURS 小时内的消息，按时间正序"""
        since = (now or datetime.now(UTC)) - timedelta(hours=RECENT_WINDOW_HOURS)
        if variant is None:
            variant = await self.detect_variant()

        try:
            rows = await self._select(
                variant,
                "WHERE m.group_id = ? AND m.created_at >= ? ORDER BY m.created_at ASC, m.id ASC",
                (group_id, format_timestamp(since)),
            )
        except aiosqlite.Error as e:
            log.error("message_list_recent_failed", group_id=group_id, error=str(e))
            raise StoreError("Failed to fetch recent messages") from e

        return [self._row_to_message(row, variant) for row in rows]

    async def _select(
        self,
        variant: SchemaVariant,
        clause: str,
        params: tuple,
    ) -> list[aiosqlite.Row]:
        layout = layout_for(variant)
        columns = ", ".join(f"m.{col} AS {col}" for col in layout.columns)
        cursor = await self._conn.execute(
            f"""
            SELECT {columns},
                   p.username AS p_username,
                   p.full_name AS p_full_name,
                   p.avatar_url AS p_avatar_url
            FROM {layout.table} m
            LEFT JOIN profiles p ON p.id = m.user_id
            {clause}
            """,
            params,
        )
        return list(await cursor.fetchall())

    @staticmethod
    def _row_to_message(row: aiosqlite.Row, variant: SchemaVariant) -> ChatMessage:
        """联表行 -> ChatMessage，Bot/系统消息附加固定 Bot 身份"""
        author_id = row["user_id"]
        profile: Profile | None = None
        if is_bot_author(author_id):
            profile = bot_profile_for(author_id)
        elif row["p_username"] is not None or row["p_full_name"] is not None:
            profile = profile_from_row(
                author_id, row["p_username"], row["p_full_name"], row["p_avatar_url"]
            )
        return from_row(row, variant, profile=profile)

    async def _load_profile(self, author_id: str | None) -> Profile | None:
        """尽力获取作者资料，失败不影响发送结果"""
        if is_bot_author(author_id):
            return bot_profile_for(author_id)
        try:
            cursor = await self._conn.execute(
                "SELECT id, username, full_name, avatar_url FROM profiles WHERE id = ?",
                (author_id,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            log.warning("author_profile_join_failed", author_id=author_id, error=str(e))
            return None
        if row is None:
            return None
        return profile_from_row(row[0], row[1], row[2], row[3])
