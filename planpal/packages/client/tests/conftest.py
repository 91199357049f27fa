"""packages/client 测试配置 -- 内存版网关替身 + 消息构造"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from planpal.client import SendResult
from planpal.core.config import STREAM_SUBSCRIBED
from planpal.core.models import (
    BOT_SENTINEL,
    ChatMessage,
    MessageKind,
    MessagePage,
    Profile,
    SchemaVariant,
    bot_profile_for,
    is_bot_query,
)

GROUP_ID = "6f1c2a52-5d0e-4b8e-9a55-0c1f3c7f9a01"
BASE_TIME = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)

# 与网关 SSE 首个 status 事件一致
SUBSCRIBED = {"status": STREAM_SUBSCRIBED}


def build_message(
    seq: int,
    author_id: str | None = "bob",
    group_id: str = GROUP_ID,
    body: str | None = None,
    kind: MessageKind = MessageKind.TEXT,
) -> ChatMessage:
    return ChatMessage(
        id=f"01J{seq:023d}",
        group_id=group_id,
        author_id=author_id,
        body=body if body is not None else f"message {seq}",
        kind=kind,
        created_at=BASE_TIME + timedelta(seconds=seq),
    )


async def _drain(queue: asyncio.Queue):
    """None 结束流，Exception 模拟断线"""
    while True:
        item = await queue.get()
        if item is None:
            return
        if isinstance(item, Exception):
            raise item
        yield item


class FakeChatApi:
    """内存网关：满足 ChatSession 使用的 ChatApiClient 接口、FeedSource 与 BroadcastTransport"""

    def __init__(self, viewer_id: str = "alice", variant=SchemaVariant.CHAT_MESSAGES) -> None:
        self.viewer_id = viewer_id
        self.variant = variant
        self.history: list[ChatMessage] = []
        self.profiles: dict[str, Profile] = {}
        self.profile_calls: list[str] = []
        self.sent: list[tuple[str, MessageKind]] = []
        self.broadcasts: list[ChatMessage] = []
        self.bot_reply = "How about bowling on Friday?"
        self.send_gate: asyncio.Event | None = None
        self.in_flight = 0
        self.max_in_flight = 0
        self.feed_subscriptions: list[tuple[str, SchemaVariant, asyncio.Queue]] = []
        self.broadcast_subscriptions: list[asyncio.Queue] = []
        self.feed_opens = 0
        self._seq = 1000

    def next_message(self, author_id, body, kind=MessageKind.TEXT) -> ChatMessage:
        self._seq += 1
        message = build_message(self._seq, author_id=author_id, body=body, kind=kind)
        self.history.append(message)
        return message

    async def detect_schema(self, group_id: str) -> SchemaVariant:
        return self.variant

    async def fetch_page(self, group_id: str, limit: int, offset: int = 0) -> MessagePage:
        newest_first = list(reversed(self.history))
        chunk = list(reversed(newest_first[offset:offset + limit]))
        return MessagePage(messages=chunk, count=len(chunk), limit=limit, offset=offset)

    async def get_profile(self, user_id: str) -> Profile | None:
        self.profile_calls.append(user_id)
        return self.profiles.get(user_id)

    async def send_message(self, group_id: str, body: str, kind=MessageKind.TEXT) -> SendResult:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.send_gate is not None:
                await self.send_gate.wait()
            else:
                await asyncio.sleep(0)
            self.sent.append((body, MessageKind(kind)))
            user_message = self.next_message(self.viewer_id, body, kind)
            bot_message = None
            if is_bot_query(body, kind):
                bot_message = self.next_message(
                    BOT_SENTINEL, self.bot_reply, MessageKind.SYSTEM
                ).model_copy(update={"author_profile": bot_profile_for(BOT_SENTINEL)})
            return SendResult(user_message=user_message, bot_message=bot_message)
        finally:
            self.in_flight -= 1

    async def broadcast(self, group_id: str, message: ChatMessage) -> int:
        self.broadcasts.append(message)
        envelope = {"event": "message", "payload": {"message": message.to_wire()}}
        for queue in self.broadcast_subscriptions:
            queue.put_nowait(envelope)
        return len(self.broadcast_subscriptions)

    async def stream_feed(self, group_id: str, variant: SchemaVariant):
        queue: asyncio.Queue = asyncio.Queue()
        subscription = (group_id, SchemaVariant(variant), queue)
        self.feed_subscriptions.append(subscription)
        self.feed_opens += 1
        try:
            yield SUBSCRIBED
            async for item in _drain(queue):
                yield item
        finally:
            self.feed_subscriptions.remove(subscription)

    async def stream_broadcast(self, group_id: str):
        queue: asyncio.Queue = asyncio.Queue()
        self.broadcast_subscriptions.append(queue)
        try:
            yield SUBSCRIBED
            async for item in _drain(queue):
                yield item
        finally:
            self.broadcast_subscriptions.remove(queue)

    def push_insert(self, row: dict) -> None:
        for _, _, queue in self.feed_subscriptions:
            queue.put_nowait({"new": row})

    def drop_feed(self, error: Exception | None = None) -> None:
        """结束所有推送流（error 时以异常断开）"""
        for _, _, queue in self.feed_subscriptions:
            queue.put_nowait(error)


@pytest.fixture
def make_message():
    return build_message


@pytest.fixture
def fake_api() -> FakeChatApi:
    return FakeChatApi()


@pytest.fixture
def eventually():
    """轮询等待后台任务达到预期状态"""

    async def _wait(predicate, timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.01)

    return _wait


@pytest.fixture
def group_id() -> str:
    return GROUP_ID
