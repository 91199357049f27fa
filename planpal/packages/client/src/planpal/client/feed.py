"""ChangeFeedListener -- 插入通知订阅

每个 (群组, 表变体) 只持有一个订阅；变体切换时先退订再重新订阅。
到达的原始行经 schema 映射规范化后交给 ReconciliationEngine：
- 自己发送的消息跳过（已由本地发送与广播回声送达）
- Bot / 系统消息附加固定 Bot 身份，其余作者经 IdentityResolver 解析
"""

import asyncio
import contextlib
from collections.abc import AsyncIterator, Mapping
from typing import Any, Protocol

import structlog
from planpal.core.models import ChatMessage, SchemaVariant, bot_profile_for, is_bot_author
from planpal.core.store.schema import normalize_row

from .config import STREAM_RETRY_DELAY_S
from .identity import IdentityResolver, is_bot_profile
from .reconciler import ReconciliationEngine
from .streams import consume_stream

log = structlog.get_logger()


class FeedSource(Protocol):
    """插入通知来源"""

    def stream_feed(
        self, group_id: str, variant: SchemaVariant
    ) -> AsyncIterator[dict[str, Any]]: ...


class ChangeFeedListener:
    """插入通知监听器"""

    def __init__(
        self,
        source: FeedSource,
        engine: ReconciliationEngine,
        identity: IdentityResolver,
        viewer_id: str,
        variant: SchemaVariant,
        *,
        on_catch_up=None,
        retry_delay_s: float = STREAM_RETRY_DELAY_S,
    ) -> None:
        """
        Args:
            source: 通知来源（ChatApiClient 或测试替身）
            engine: 目标消息列表
            identity: 作者资料解析器
            viewer_id: 当前用户 ID
            variant: 订阅的表变体
            on_catch_up: 每次订阅建立后调用的补齐回调
            retry_delay_s: 断线重连间隔
        """
        self._source = source
        self._engine = engine
        self._identity = identity
        self._viewer_id = viewer_id
        self._variant = SchemaVariant(variant)
        self._on_catch_up = on_catch_up
        self._retry_delay_s = retry_delay_s
        self._task: asyncio.Task | None = None

    @property
    def variant(self) -> SchemaVariant:
        return self._variant

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            return
        group_id = self._engine.group_id
        variant = self._variant
        self._task = asyncio.create_task(
            consume_stream(
                "change_feed",
                lambda: self._source.stream_feed(group_id, variant),
                self._handle_event,
                retry_delay_s=self._retry_delay_s,
                on_subscribed=self._on_catch_up,
                group_id=group_id,
                table=variant.value,
            )
        )
        log.info("feed_listener_started", group_id=group_id, table=variant.value)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def switch_variant(self, variant: SchemaVariant) -> None:
        """切换订阅的表变体，任何时刻只持有一个订阅"""
        variant = SchemaVariant(variant)
        if variant == self._variant and self.is_running:
            return
        await self.stop()
        self._variant = variant
        await self.start()

    async def _handle_event(self, event: Mapping[str, Any]) -> None:
        await self.handle(event["new"])

    async def handle(self, row: Mapping[str, Any]) -> ChatMessage | None:
        """处理一行插入通知

        Returns:
            交给 engine 的消息；被跳过时返回 None
        """
        message = normalize_row(row, self._variant)
        if message.author_id is not None and message.author_id == self._viewer_id:
            return None

        if is_bot_author(message.author_id):
            profile = bot_profile_for(message.author_id)
        else:
            profile = await self._identity.resolve(message.author_id)
            if is_bot_profile(profile):
                profile = bot_profile_for(message.author_id)

        message = message.model_copy(update={"author_profile": profile})
        self._engine.apply_incoming(message)
        return message
