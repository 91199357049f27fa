"""ChatService -- 聊天消息业务逻辑

成员校验 -> 变体探测 -> 写入 -> 发布插入通知。
"@bot" 命令在用户消息落库后触发 Bot 流水线，Bot 回复失败只影响 botMessage。
"""

import structlog
from planpal.core.exceptions import GroupNotFoundError, NotGroupMemberError
from planpal.core.models import (
    ChatMessage,
    Group,
    MessageKind,
    MessagePage,
    extract_bot_query,
    is_bot_query,
)
from planpal.core.store import StoreGroup
from planpal.core.store.schema import to_row

from .chatbot_service import ChatbotService
from .feed_hub import ChangeFeedHub

log = structlog.get_logger()


class ChatService:
    """聊天业务服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        feed_hub: ChangeFeedHub | None = None,
        chatbot_service: ChatbotService | None = None,
    ) -> None:
        self._stores = store_group
        self._feed_hub = feed_hub
        self._chatbot = chatbot_service

    async def ensure_member(self, group_id: str, user_id: str) -> Group:
        """校验群组存在且用户是成员

        Raises:
            GroupNotFoundError: 群组不存在或已删除
            NotGroupMemberError: 用户不是成员
        """
        group = await self._stores.group_store.get_group(group_id)
        if group is None:
            raise GroupNotFoundError(group_id)
        if not group.is_member(user_id):
            log.warning("chat_access_denied", group_id=group_id, user_id=user_id)
            raise NotGroupMemberError(group_id, user_id)
        return group

    async def send_message(
        self,
        group_id: str,
        user_id: str,
        body: str,
        kind: MessageKind = MessageKind.TEXT,
    ) -> ChatMessage:
        """写入一条用户消息并推送插入通知"""
        await self.ensure_member(group_id, user_id)
        store = self._stores.message_store
        variant = await store.detect_variant()
        message = await store.send(group_id, user_id, body, kind, variant=variant)

        if self._feed_hub is not None:
            await self._feed_hub.publish_insert(group_id, variant, to_row(message, variant))
        return message

    async def send_with_bot(
        self,
        group_id: str,
        user_id: str,
        body: str,
        kind: MessageKind = MessageKind.TEXT,
    ) -> tuple[ChatMessage, ChatMessage | None]:
        """写入用户消息；若为 Bot 命令则同步生成并持久化 Bot 回复

        Returns:
            (用户消息, Bot 消息或 None)
        """
        user_message = await self.send_message(group_id, user_id, body, kind)

        if not is_bot_query(body, kind) or self._chatbot is None:
            return user_message, None

        query = extract_bot_query(body) or body.strip()
        text = await self._chatbot.generate_chatbot_response(group_id, query, user_id=user_id)
        bot_message = await self._chatbot.persist_reply(group_id, text, MessageKind.SYSTEM)
        if bot_message is None:
            log.warning("bot_reply_missing", group_id=group_id, user_message_id=user_message.id)
        return user_message, bot_message

    async def list_messages(
        self,
        group_id: str,
        user_id: str,
        limit: int,
        offset: int,
    ) -> MessagePage:
        await self.ensure_member(group_id, user_id)
        return await self._stores.message_store.list_messages(group_id, limit, offset)

    async def list_recent(self, group_id: str, user_id: str) -> list[ChatMessage]:
        await self.ensure_member(group_id, user_id)
        return await self._stores.message_store.list_recent(group_id)
