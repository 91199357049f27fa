"""ChatMessage Domain Model -- 群聊消息与作者资料

消息在不同到达通道（REST 分页、变更推送、广播回声、本地发送）之间
统一使用 ChatMessage；对外传输使用 to_wire()/from_wire() 的 JSON 形态，
字段名与历史 REST 载荷保持一致（user_id / message / message_type / profiles）。
"""

import re
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from ..config import BOT_DISPLAY_NAME, BOT_USERNAME, get_bot_user_id
from .enums import MessageKind

# 保留的 Bot 作者标识
BOT_SENTINEL = "bot"

# "@bot" 命令前缀：其后必须是结尾、空白或逗号（排除 "@botany" 之类）
_BOT_COMMAND_RE = re.compile(r"^@bot(?=$|[\s,])[\s,]*", re.IGNORECASE)

# 服务端触发规则："@bot" 后紧跟空白
_BOT_TRIGGER_RE = re.compile(r"^@bot\s", re.IGNORECASE)


class Profile(BaseModel):
    """作者展示资料（只读，生命周期由外部维护）"""

    id: str = Field(description="用户 ID")
    display_name: str = Field(default="", description="展示名称")
    avatar_url: str | None = Field(default=None, description="头像 URL")
    username: str | None = Field(default=None, description="用户名")
    is_bot: bool = Field(default=False, description="是否为 Bot 身份")

    def to_wire(self) -> dict[str, Any]:
        return {"full_name": self.display_name, "avatar_url": self.avatar_url}


# Bot 的固定展示身份
BOT_PROFILE = Profile(
    id=BOT_SENTINEL,
    display_name=BOT_DISPLAY_NAME,
    avatar_url=None,
    username=BOT_USERNAME,
    is_bot=True,
)


def bot_profile_for(author_id: str | None) -> Profile:
    """返回绑定到具体作者 ID 的固定 Bot 资料"""
    if author_id is None or author_id == BOT_SENTINEL:
        return BOT_PROFILE
    return BOT_PROFILE.model_copy(update={"id": author_id})


def is_bot_author(author_id: str | None) -> bool:
    """无作者、哨兵值或预配置的 Bot 用户 ID（PLANPAL_BOT_USER_ID）"""
    if author_id is None or author_id == BOT_SENTINEL:
        return True
    return author_id == get_bot_user_id()


class ChatMessage(BaseModel):
    """群聊消息 -- 创建后不可变

    排序键为 (created_at, id)；id 是唯一的去重键。
    author_profile 为读取时附加的反规范化资料，不随消息持久化。
    """

    id: str = Field(description="消息 ID（存储分配，ULID）")
    group_id: str = Field(description="所属群组 ID")
    author_id: str | None = Field(default=None, description="作者 ID，None 表示系统通知")
    body: str = Field(description="消息正文")
    kind: MessageKind = Field(default=MessageKind.TEXT, description="消息类型")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="服务端时间戳",
    )
    attachment_url: str | None = Field(default=None, description="附件 URL")
    author_profile: Profile | None = Field(default=None, description="作者资料")

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return (self.created_at, self.id)

    @property
    def is_bot_message(self) -> bool:
        """Bot 或系统消息：作者为哨兵值 / 无作者 / 资料标记为 Bot"""
        if is_bot_author(self.author_id):
            return True
        return self.author_profile is not None and self.author_profile.is_bot

    def to_wire(self) -> dict[str, Any]:
        """转换为 REST / 广播载荷"""
        return {
            "id": self.id,
            "group_id": self.group_id,
            "user_id": self.author_id,
            "message": self.body,
            "message_type": self.kind.value,
            "created_at": self.created_at.isoformat(),
            "attachment_url": self.attachment_url,
            "profiles": self.author_profile.to_wire() if self.author_profile else None,
        }

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "ChatMessage":
        """从 REST / 广播载荷还原消息，兼容 content 字段"""
        body = data.get("message")
        if body is None:
            body = data.get("content") or ""

        profile = None
        profile_data = data.get("profiles")
        author_id = data.get("user_id")
        if profile_data:
            display_name = profile_data.get("full_name") or ""
            is_bot = display_name == BOT_DISPLAY_NAME or author_id == BOT_SENTINEL
            profile = Profile(
                id=author_id or BOT_SENTINEL,
                display_name=display_name,
                avatar_url=profile_data.get("avatar_url"),
                username=BOT_USERNAME if is_bot else None,
                is_bot=is_bot,
            )

        return cls(
            id=str(data["id"]),
            group_id=str(data["group_id"]),
            author_id=author_id,
            body=body,
            kind=MessageKind(data.get("message_type") or MessageKind.TEXT),
            created_at=data["created_at"],
            attachment_url=data.get("attachment_url"),
            author_profile=profile,
        )


class MessagePage(BaseModel):
    """分页查询结果 -- 页内按时间正序"""

    messages: list[ChatMessage] = Field(default_factory=list)
    count: int = Field(default=0, ge=0)
    limit: int = Field(ge=1)
    offset: int = Field(default=0, ge=0)


def extract_bot_query(text: str) -> str | None:
    """提取 "@bot" 命令后的查询文本

    接受 "@bot"、"@bot," 与 "@bot <query>"，客户端据此识别命令；
    服务端是否触发 Bot 由 is_bot_query 决定。

    Args:
        text: 用户输入

    Returns:
        去掉命令前缀（及其后的空白/逗号）的查询；非 Bot 命令返回 None
    """
    stripped = text.strip()
    match = _BOT_COMMAND_RE.match(stripped)
    if match is None:
        return None
    return stripped[match.end():].strip()


def is_bot_query(text: str, kind: MessageKind | str = MessageKind.TEXT) -> bool:
    """服务端触发规则：消息类型为 bot_query，或正文以 "@bot " 开头"""
    return kind == MessageKind.BOT_QUERY or _BOT_TRIGGER_RE.match(text) is not None
