"""端到端测试配置 -- 网关 app + ChatApiClient（ASGITransport）+ 进程内实时通道

ASGITransport 会缓冲整个 SSE 响应，因此推送与广播直接订阅网关持有的 hub，
REST 调用仍经过完整的路由、认证与异常映射。
"""

import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from planpal.client import ChatApiClient, ChatSession
from planpal.core.config import STREAM_SUBSCRIBED
from planpal.core.models import ChatMessage, Group, SchemaVariant
from planpal.core.store import StoreGroup, create_store_group
from planpal.provider import DegradedReplyAdapter, FallbackManager, ModelCallResult

GROUP_ID = "0b7d9a1e-3c44-4f0a-8d2b-5e6f7a8b9c0d"
SUBSCRIBED = {"status": STREAM_SUBSCRIBED}


class CannedGenerator:
    """固定回复的生成器"""

    def __init__(self, content: str = "Try Luigi's on 5th street for pasta!") -> None:
        self.content = content

    async def complete(self, messages, **kwargs) -> ModelCallResult:
        return ModelCallResult(
            content=self.content, model_name="canned", provider="canned", duration_ms=1
        )


class HubStreams:
    """直接订阅网关 hub 的推送与广播通道"""

    def __init__(self, app) -> None:
        self._app = app

    async def stream_feed(self, group_id: str, variant: SchemaVariant):
        hub = self._app.state.feed_hub
        queue = await hub.subscribe_inserts(group_id, variant)
        try:
            yield SUBSCRIBED
            while True:
                yield await queue.get()
        finally:
            await hub.unsubscribe_inserts(group_id, variant, queue)

    async def stream_broadcast(self, group_id: str):
        hub = self._app.state.broadcast_hub
        queue = await hub.subscribe(group_id)
        try:
            yield SUBSCRIBED
            while True:
                yield await queue.get()
        finally:
            await hub.unsubscribe(group_id, queue)

    async def broadcast(self, group_id: str, message: ChatMessage) -> int:
        return await self._app.state.broadcast_hub.publish_message(group_id, message)


@pytest_asyncio.fixture
async def e2e_store_group(tmp_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    sg = await create_store_group(str(tmp_db_path), ["chat_messages"])
    yield sg
    await sg.conn.close()


@pytest_asyncio.fixture
async def crew(e2e_store_group: StoreGroup) -> Group:
    group = Group(
        id=GROUP_ID,
        name="Weekend Crew",
        description="Friday night plans",
        group_type="friends",
        members=["alice", "bob"],
    )
    await e2e_store_group.group_store.create_group(group)
    return group


@pytest_asyncio.fixture
async def e2e_app(e2e_store_group: StoreGroup):
    from planpal.gateway.main import create_app
    from planpal.gateway.services.chatbot_service import ChatbotService
    from planpal.gateway.services.feed_hub import BroadcastHub, ChangeFeedHub

    application = create_app()
    application.state.store_group = e2e_store_group
    application.state.feed_hub = ChangeFeedHub()
    application.state.broadcast_hub = BroadcastHub()
    application.state.chatbot_service = ChatbotService(
        e2e_store_group,
        FallbackManager(primary=CannedGenerator(), fallback=DegradedReplyAdapter()),
        application.state.feed_hub,
    )
    application.state.llm_client = None
    yield application


@pytest_asyncio.fixture
async def http(e2e_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=e2e_app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def open_tab(e2e_app, http):
    """为指定用户打开一个聊天视图（同一用户可打开多个）"""
    streams = HubStreams(e2e_app)

    def _open(user_id: str, **kwargs) -> ChatSession:
        api = ChatApiClient(user_id, http_client=http)
        return ChatSession(
            api,
            GROUP_ID,
            user_id,
            feed_source=streams,
            broadcast_transport=streams,
            retry_delay_s=0.01,
            **kwargs,
        )

    return _open


@pytest.fixture
def eventually():
    async def _wait(predicate, timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.01)

    return _wait


@pytest.fixture
def wait_joined(e2e_app, eventually):
    """等待 count 个视图的推送与广播订阅都已建立"""
    feed_hub = e2e_app.state.feed_hub
    broadcast_hub = e2e_app.state.broadcast_hub

    async def _wait(count: int) -> None:
        await eventually(
            lambda: feed_hub.subscriber_count((GROUP_ID, SchemaVariant.CHAT_MESSAGES)) == count
            and broadcast_hub.subscriber_count(GROUP_ID) == count
        )

    return _wait
