"""ChatSession -- 单个群组视图的作用域所有者

进入时探测聊天表变体、加载最新一页、启动变更推送与广播频道；
退出时释放两条订阅。退出后才完成的发送结果被丢弃。
"""

import asyncio
from typing import Self

import structlog
from planpal.core.config import DEFAULT_PAGE_LIMIT, MESSAGE_MAX_LENGTH
from planpal.core.exceptions import ChatValidationError
from planpal.core.models import (
    ChatMessage,
    MessageKind,
    SchemaVariant,
    extract_bot_query,
    is_bot_query,
)

from .api import ChatApiClient, SendResult
from .attachments import AttachmentUploader, upload_attachment
from .broadcast import BroadcastChannel, BroadcastTransport
from .config import STREAM_RETRY_DELAY_S
from .feed import ChangeFeedListener, FeedSource
from .identity import IdentityResolver
from .reconciler import ReconciliationEngine

log = structlog.get_logger()


def validate_outgoing(text: str) -> str:
    """发送前的本地校验，不合法时不发起任何请求"""
    if not text or not text.strip():
        raise ChatValidationError("Message cannot be empty", field="message")
    if len(text) > MESSAGE_MAX_LENGTH:
        raise ChatValidationError(
            f"Message exceeds {MESSAGE_MAX_LENGTH} characters", field="message"
        )
    return text


class ChatSession:
    """群聊会话

    用法::

        async with ChatSession(api, group_id, viewer_id) as session:
            await session.send("@bot where should we eat?")
            print(session.messages)
    """

    def __init__(
        self,
        api: ChatApiClient,
        group_id: str,
        viewer_id: str,
        *,
        page_limit: int = DEFAULT_PAGE_LIMIT,
        identity: IdentityResolver | None = None,
        feed_source: FeedSource | None = None,
        broadcast_transport: BroadcastTransport | None = None,
        retry_delay_s: float = STREAM_RETRY_DELAY_S,
    ) -> None:
        self._api = api
        self.group_id = group_id
        self.viewer_id = viewer_id
        self.engine = ReconciliationEngine(group_id, page_limit=page_limit)
        self.identity = identity or IdentityResolver(api.get_profile)
        self._feed_source = feed_source or api
        self._broadcast_transport = broadcast_transport or api
        self._retry_delay_s = retry_delay_s
        self._send_lock = asyncio.Lock()
        self._feed: ChangeFeedListener | None = None
        self._channel: BroadcastChannel | None = None
        self._variant: SchemaVariant | None = None
        self._closed = False

    @property
    def messages(self) -> list[ChatMessage]:
        return self.engine.messages

    @property
    def variant(self) -> SchemaVariant | None:
        return self._variant

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> Self:
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def open(self) -> None:
        self._closed = False
        self._variant = await self._api.detect_schema(self.group_id)
        page = await self._api.fetch_page(self.group_id, self.engine.page_limit)
        self._observe_profiles(page.messages)
        self.engine.apply_initial_page(page.messages)

        self._feed = ChangeFeedListener(
            self._feed_source,
            self.engine,
            self.identity,
            self.viewer_id,
            self._variant,
            on_catch_up=self.resync,
            retry_delay_s=self._retry_delay_s,
        )
        self._channel = BroadcastChannel(
            self._broadcast_transport, self.engine, retry_delay_s=self._retry_delay_s
        )
        await self._feed.start()
        await self._channel.join()
        log.info(
            "chat_session_opened",
            group_id=self.group_id,
            table=self._variant.value,
            loaded=len(page.messages),
        )

    async def close(self) -> None:
        self._closed = True
        if self._feed is not None:
            await self._feed.stop()
            self._feed = None
        if self._channel is not None:
            await self._channel.leave()
            self._channel = None
        log.info("chat_session_closed", group_id=self.group_id)

    def _observe_profiles(self, messages: list[ChatMessage]) -> None:
        for message in messages:
            if message.author_profile is not None and message.author_id is not None:
                self.identity.observe(message.author_profile)

    async def send(self, text: str, kind: MessageKind = MessageKind.TEXT) -> SendResult | None:
        """发送消息；Bot 命令时同时带回 Bot 回复

        Returns:
            发送结果；会话已关闭时返回 None

        Raises:
            ChatValidationError: 正文为空或超长（未发起请求）
            ChatApiError: 网关拒绝
        """
        validate_outgoing(text)
        # "@bot" / "@bot," 不满足服务端触发规则，改用 bot_query 类型发送
        if kind == MessageKind.TEXT and extract_bot_query(text) is not None:
            if not is_bot_query(text, kind):
                kind = MessageKind.BOT_QUERY
        async with self._send_lock:
            result = await self._api.send_message(self.group_id, text, kind)
            if self._closed:
                log.info("late_send_result_discarded", group_id=self.group_id)
                return None

            self.engine.apply_optimistic(result.user_message)
            if result.bot_message is not None:
                self.engine.apply_optimistic(result.bot_message)
            if self._channel is not None:
                await self._channel.send(result.user_message)
            return result

    async def ask_bot(self, query: str) -> SendResult | None:
        return await self.send(query, MessageKind.BOT_QUERY)

    async def load_older(self) -> int:
        """加载更早一页，返回实际插入的条数"""
        if not self.engine.has_more:
            return 0
        page = await self._api.fetch_page(
            self.group_id, self.engine.page_limit, offset=self.engine.next_offset
        )
        self._observe_profiles(page.messages)
        return self.engine.apply_older_page(page.messages)

    async def resync(self) -> int:
        """重新拉取最新一页，补齐推送断线期间错过的消息"""
        page = await self._api.fetch_page(self.group_id, self.engine.page_limit)
        self._observe_profiles(page.messages)
        return self.engine.apply_catch_up(page.messages)

    async def switch_variant(self, variant: SchemaVariant) -> None:
        self._variant = SchemaVariant(variant)
        if self._feed is not None:
            await self._feed.switch_variant(self._variant)

    async def send_attachment(
        self,
        filename: str,
        data: bytes,
        uploader: AttachmentUploader,
        content_type: str | None = None,
    ) -> SendResult | None:
        """上传附件后以 attachment 类型发送其公开 URL"""
        url = await upload_attachment(
            uploader, self.group_id, self.viewer_id, filename, data, content_type
        )
        return await self.send(url, MessageKind.ATTACHMENT)
