"""聊天表变体映射 -- 逻辑消息 <-> 各变体行

两种表形态在生产中并存：
- chat_messages（变体 A）: message, message_type
- messages（变体 B）: content, attachment_url

所有字段名差异集中在此模块，调用方只传 SchemaVariant，不内联分支。
这里的函数均为纯函数，客户端也用它们规范化变更推送的原始行。
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from ..models.enums import MessageKind, SchemaVariant
from ..models.message import ChatMessage, Profile


@dataclass(frozen=True)
class VariantLayout:
    """单个变体的列布局"""

    table: str
    body_column: str
    kind_column: str | None = None
    attachment_column: str | None = None

    @property
    def columns(self) -> tuple[str, ...]:
        cols = ["id", "group_id", "user_id", self.body_column]
        if self.kind_column:
            cols.append(self.kind_column)
        if self.attachment_column:
            cols.append(self.attachment_column)
        cols.append("created_at")
        return tuple(cols)


LAYOUTS: dict[SchemaVariant, VariantLayout] = {
    SchemaVariant.CHAT_MESSAGES: VariantLayout(
        table="chat_messages",
        body_column="message",
        kind_column="message_type",
    ),
    SchemaVariant.MESSAGES: VariantLayout(
        table="messages",
        body_column="content",
        attachment_column="attachment_url",
    ),
}


def layout_for(variant: SchemaVariant) -> VariantLayout:
    return LAYOUTS[SchemaVariant(variant)]


def to_row(message: ChatMessage, variant: SchemaVariant) -> dict[str, Any]:
    """逻辑消息 -> 变体插入载荷

    Args:
        message: 待持久化的消息（id 与 created_at 已分配）
        variant: 目标变体

    Returns:
        列名 -> 值 的字典，列顺序与 VariantLayout.columns 一致
    """
    layout = layout_for(variant)
    row: dict[str, Any] = {
        "id": message.id,
        "group_id": message.group_id,
        "user_id": message.author_id,
        layout.body_column: message.body,
    }
    if layout.kind_column:
        row[layout.kind_column] = message.kind.value
    if layout.attachment_column:
        row[layout.attachment_column] = message.attachment_url
    row["created_at"] = format_timestamp(message.created_at)
    return row


def format_timestamp(value: datetime) -> str:
    """UTC + 固定微秒精度，保证 TEXT 列按字典序即按时间排序"""
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _parse_kind(value: str | None) -> MessageKind:
    try:
        return MessageKind(value or MessageKind.TEXT)
    except ValueError:
        return MessageKind.TEXT


def from_row(
    row: Mapping[str, Any],
    variant: SchemaVariant,
    profile: Profile | None = None,
) -> ChatMessage:
    """变体行 -> 逻辑消息

    变体 B 没有类型列：有 attachment_url 视为 attachment，
    无作者视为 system，其余为 text。
    """
    layout = layout_for(variant)
    author_id = row["user_id"]
    body = row[layout.body_column] or ""
    attachment_url = None

    if layout.kind_column:
        kind = _parse_kind(row[layout.kind_column])
        if kind == MessageKind.ATTACHMENT:
            attachment_url = body
    else:
        attachment_url = row[layout.attachment_column] if layout.attachment_column else None
        if attachment_url:
            kind = MessageKind.ATTACHMENT
            body = body or attachment_url
        elif author_id is None:
            kind = MessageKind.SYSTEM
        else:
            kind = MessageKind.TEXT

    created_at = row["created_at"]
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at)

    return ChatMessage(
        id=str(row["id"]),
        group_id=str(row["group_id"]),
        author_id=author_id,
        body=body,
        kind=kind,
        created_at=created_at,
        attachment_url=attachment_url,
        author_profile=profile,
    )


def detect_row_variant(row: Mapping[str, Any]) -> SchemaVariant:
    """根据行内字段判断变体（推送行未标注表名时使用）"""
    if "message" in row.keys():
        return SchemaVariant.CHAT_MESSAGES
    return SchemaVariant.MESSAGES


def normalize_row(
    row: Mapping[str, Any],
    variant: SchemaVariant | None = None,
) -> ChatMessage:
    """规范化任意变体的原始行"""
    return from_row(row, variant or detect_row_variant(row))
