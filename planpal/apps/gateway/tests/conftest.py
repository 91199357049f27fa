"""apps/gateway 测试配置 -- 手动初始化 app.state（绕过 lifespan）+ httpx AsyncClient"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from planpal.core.models import Group
from planpal.core.store import StoreGroup, create_store_group
from planpal.provider import DegradedReplyAdapter, FallbackManager, ModelCallResult

GROUP_ID = "6f1c2a52-5d0e-4b8e-9a55-0c1f3c7f9a01"


class StubGenerator:
    """固定回复的生成器，接口与 LiteLLMClient.complete 一致"""

    def __init__(self, content: str = "Try Luigi's on 5th street for pasta!") -> None:
        self.content = content
        self.calls: list[list[dict[str, str]]] = []

    async def complete(self, messages, **kwargs) -> ModelCallResult:
        self.calls.append(messages)
        return ModelCallResult(
            content=self.content,
            model_name="stub",
            provider="stub",
            duration_ms=1,
        )


def _bearer(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {user_id}"}


@pytest.fixture
def auth():
    """默认认证器下 token 即用户 ID"""
    return _bearer


@pytest.fixture
def stub_generator() -> StubGenerator:
    return StubGenerator()


@pytest_asyncio.fixture
async def gateway_store_group(tmp_db_path: Path) -> AsyncGenerator[StoreGroup, None]:
    sg = await create_store_group(str(tmp_db_path), ["chat_messages"])
    yield sg
    await sg.conn.close()


@pytest_asyncio.fixture
async def chat_group(gateway_store_group: StoreGroup) -> Group:
    """alice / bob 的群组"""
    g = Group(
        id=GROUP_ID,
        name="Weekend Crew",
        description="Friday night plans",
        group_type="friends",
        members=["alice", "bob"],
    )
    await gateway_store_group.group_store.create_group(g)
    return g


@pytest_asyncio.fixture
async def app(gateway_store_group: StoreGroup, stub_generator: StubGenerator):
    """创建测试用 app，Bot 使用 StubGenerator + DegradedReplyAdapter"""
    from planpal.gateway.main import create_app
    from planpal.gateway.services.chatbot_service import ChatbotService
    from planpal.gateway.services.feed_hub import BroadcastHub, ChangeFeedHub

    application = create_app()
    application.state.store_group = gateway_store_group
    application.state.feed_hub = ChangeFeedHub()
    application.state.broadcast_hub = BroadcastHub()
    application.state.chatbot_service = ChatbotService(
        gateway_store_group,
        FallbackManager(primary=stub_generator, fallback=DegradedReplyAdapter()),
        application.state.feed_hub,
    )
    application.state.llm_client = None
    yield application


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
