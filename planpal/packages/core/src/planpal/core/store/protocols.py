"""Store Protocol 接口定义

定义 MessageStore、ProfileStore、GroupStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
服务层和测试替身只依赖这些接口。
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from ..models.enums import MessageKind, SchemaVariant
from ..models.group import Group, GroupEvent, GroupPoll
from ..models.message import ChatMessage, MessagePage, Profile


class MessageStore(Protocol):
    """消息存储接口"""

    async def detect_variant(self) -> SchemaVariant:
        """探测可用的聊天表变体（A 优先，失败回退 B）"""
        ...

    async def send(
        self,
        group_id: str,
        author_id: str | None,
        body: str,
        kind: MessageKind | str = MessageKind.TEXT,
        *,
        variant: SchemaVariant | None = None,
    ) -> ChatMessage:
        """持久化消息并返回存储后的行"""
        ...

    async def list_messages(
        self,
        group_id: str,
        limit: int = 50,
        offset: int = 0,
        *,
        variant: SchemaVariant | None = None,
    ) -> MessagePage:
        """分页查询（页内按时间正序）"""
        ...

    async def list_recent(
        self,
        group_id: str,
        *,
        now: datetime | None = None,
        variant: SchemaVariant | None = None,
    ) -> list[ChatMessage]:
        """查询最近时间窗口内的消息"""
        ...


class ProfileStore(Protocol):
    """资料存储接口（只读 + Bot 身份创建）"""

    async def get_profile(self, user_id: str) -> Profile | None:
        """根据用户 ID 查询资料"""
        ...

    async def get_profile_id_by_username(self, username: str) -> str | None:
        """根据用户名查询用户 ID"""
        ...

    async def create_profile(self, profile: Profile, email: str | None = None) -> str:
        """创建资料，返回最终生效的用户 ID"""
        ...


class GroupStore(Protocol):
    """群组接口（聊天子系统只读；create_group 供本地开发 CLI 使用）"""

    async def create_group(self, group: Group) -> None:
        """创建群组"""
        ...

    async def get_group(self, group_id: str) -> Group | None:
        """查询未删除的群组"""
        ...

    async def list_events(self, group_id: str, limit: int = 20) -> list[GroupEvent]:
        """按时间正序查询群组事件"""
        ...

    async def list_polls(
        self,
        event_ids: Sequence[str],
        limit: int = 10,
    ) -> list[GroupPoll]:
        """查询事件下的投票"""
        ...
