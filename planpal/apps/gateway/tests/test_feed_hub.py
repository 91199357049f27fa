"""实时通道测试

测试内容：
1. FanoutHub 订阅/取消/投递，满队列被移除
2. ChangeFeedHub 按 (group, 变体) 隔离
3. BroadcastHub 自回声与跨群组拒绝
4. POST /broadcast 与 GET /schema 路由

SSE 流本身经由 ASGITransport 会被整体缓冲，这里直接测试 hub 与路由的非流式部分。
"""

import json
from datetime import UTC, datetime

from planpal.core.config import STREAM_SUBSCRIBED
from planpal.core.models import ChatMessage, SchemaVariant
from planpal.gateway.routes.feed import _stream
from planpal.gateway.services.feed_hub import (
    BroadcastHub,
    ChangeFeedHub,
    FanoutHub,
    broadcast_envelope,
)


def _message(group_id: str = "g1", message_id: str = "01J0000000000000000000000A") -> ChatMessage:
    return ChatMessage(
        id=message_id,
        group_id=group_id,
        author_id="alice",
        body="Hello team",
        created_at=datetime(2026, 10, 18, 12, 0, tzinfo=UTC),
    )


class TestFanoutHub:
    async def test_publish_to_all_subscribers(self):
        hub = FanoutHub()
        q1 = await hub.subscribe("k")
        q2 = await hub.subscribe("k")

        delivered = await hub.publish("k", {"n": 1})

        assert delivered == 2
        assert q1.get_nowait() == {"n": 1}
        assert q2.get_nowait() == {"n": 1}

    async def test_unsubscribe_cleans_up(self):
        hub = FanoutHub()
        q = await hub.subscribe("k")
        await hub.unsubscribe("k", q)
        assert hub.subscriber_count("k") == 0
        assert await hub.publish("k", 1) == 0

    async def test_full_queue_dropped(self):
        hub = FanoutHub(queue_maxsize=1)
        slow = await hub.subscribe("k")
        await hub.publish("k", 1)
        await hub.publish("k", 2)

        assert hub.subscriber_count("k") == 0
        assert slow.get_nowait() == 1

    async def test_sse_stream_announces_subscription_first(self):
        """订阅建立后先发 SUBSCRIBED 状态，之后才是数据事件"""
        hub = FanoutHub()
        events = _stream(hub, "k", "INSERT")

        first = await anext(events)
        assert first["event"] == "status"
        assert json.loads(first["data"]) == {"status": STREAM_SUBSCRIBED}
        assert hub.subscriber_count("k") == 1

        await hub.publish("k", {"new": {"id": "m1"}})
        second = await anext(events)
        assert second == {"event": "INSERT", "data": json.dumps({"new": {"id": "m1"}})}

        await events.aclose()
        assert hub.subscriber_count("k") == 0


class TestChangeFeedHub:
    async def test_scoped_by_group_and_variant(self):
        hub = ChangeFeedHub()
        a = await hub.subscribe_inserts("g1", SchemaVariant.CHAT_MESSAGES)
        b = await hub.subscribe_inserts("g1", SchemaVariant.MESSAGES)
        other = await hub.subscribe_inserts("g2", SchemaVariant.CHAT_MESSAGES)

        await hub.publish_insert("g1", SchemaVariant.MESSAGES, {"id": "m1", "content": "hi"})

        assert a.empty()
        assert other.empty()
        assert b.get_nowait() == {"new": {"id": "m1", "content": "hi"}}

    async def test_string_variant_accepted(self):
        hub = ChangeFeedHub()
        q = await hub.subscribe_inserts("g1", "chat_messages")
        await hub.publish_insert("g1", SchemaVariant.CHAT_MESSAGES, {"id": "m1"})
        assert q.qsize() == 1


class TestBroadcastHub:
    async def test_self_echo(self):
        """发送者自己的订阅同样收到"""
        hub = BroadcastHub()
        sender = await hub.subscribe("g1")
        message = _message()

        await hub.publish_message("g1", message)

        payload = sender.get_nowait()
        assert payload == broadcast_envelope(message)
        assert payload["event"] == "message"
        assert payload["payload"]["message"]["id"] == message.id

    async def test_cross_group_rejected(self):
        hub = BroadcastHub()
        q = await hub.subscribe("g1")
        delivered = await hub.publish_message("g1", _message(group_id="g2"))
        assert delivered == 0
        assert q.empty()


class TestRealtimeRoutes:
    async def test_schema_reports_variant(self, client, chat_group, auth):
        resp = await client.get(f"/api/v1/chat/{chat_group.id}/schema", headers=auth("bob"))
        assert resp.status_code == 200
        assert resp.json() == {"group_id": chat_group.id, "variant": "chat_messages"}

    async def test_post_broadcast_delivers(self, app, client, chat_group, auth):
        queue = await app.state.broadcast_hub.subscribe(chat_group.id)
        message = _message(group_id=chat_group.id)

        resp = await client.post(
            f"/api/v1/chat/{chat_group.id}/broadcast",
            json=broadcast_envelope(message),
            headers=auth("alice"),
        )

        assert resp.status_code == 200
        assert resp.json() == {"delivered": 1}
        received = queue.get_nowait()
        assert received["payload"]["message"]["message"] == "Hello team"

    async def test_post_broadcast_requires_message(self, client, chat_group, auth):
        resp = await client.post(
            f"/api/v1/chat/{chat_group.id}/broadcast",
            json={"event": "message", "payload": {}},
            headers=auth("alice"),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["field"] == "payload"

    async def test_feed_requires_membership(self, client, chat_group, auth):
        resp = await client.get(
            f"/api/v1/chat/{chat_group.id}/feed?table=messages", headers=auth("mallory")
        )
        assert resp.status_code == 403
