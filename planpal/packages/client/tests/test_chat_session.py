"""ChatSession 测试

测试内容：
1. 进入时加载最新页并启动两条订阅，退出时释放
2. 空白 / 超长正文在发起请求前被拒绝
3. 发送后本地确认 + 广播；Bot 命令带回 Bot 回复
4. 同一时刻只有一个发送在途，退出后完成的发送结果被丢弃
5. 加载历史页、断线补齐、附件发送
"""

import asyncio

import pytest
from planpal.client import ChatSession, IdentityResolver
from planpal.core.config import BOT_DISPLAY_NAME, MESSAGE_MAX_LENGTH
from planpal.core.exceptions import ChatValidationError
from planpal.core.models import MessageKind, Profile, SchemaVariant
from planpal.core.store.schema import to_row


class FakeUploader:
    def __init__(self, url: str = "https://cdn.example/chat-attachments/photo.png") -> None:
        self.url = url
        self.uploads: list[tuple[str, int, str]] = []

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        self.uploads.append((path, len(data), content_type))
        return self.url


def _session(fake_api, group_id, **kwargs) -> ChatSession:
    return ChatSession(fake_api, group_id, "alice", retry_delay_s=0.01, **kwargs)


class TestLifecycle:
    async def test_open_loads_page_and_subscribes(self, fake_api, group_id, make_message, eventually):
        bob = Profile(id="bob", display_name="Bob")
        fake_api.history = [
            make_message(i).model_copy(update={"author_profile": bob}) for i in range(1, 4)
        ]

        async with _session(fake_api, group_id, page_limit=2) as session:
            assert session.variant == SchemaVariant.CHAT_MESSAGES
            assert [m.body for m in session.messages] == ["message 2", "message 3"]
            assert session.engine.has_more is True
            assert session.identity.cached("bob") == bob
            await eventually(
                lambda: len(fake_api.feed_subscriptions) == 1
                and len(fake_api.broadcast_subscriptions) == 1
            )

        assert session.is_closed
        assert fake_api.feed_subscriptions == []
        assert fake_api.broadcast_subscriptions == []

    async def test_subscribes_to_detected_variant(self, fake_api, group_id, eventually):
        fake_api.variant = SchemaVariant.MESSAGES
        async with _session(fake_api, group_id):
            await eventually(lambda: len(fake_api.feed_subscriptions) == 1)
            assert fake_api.feed_subscriptions[0][1] == SchemaVariant.MESSAGES

    async def test_custom_identity_resolver(self, fake_api, group_id):
        identity = IdentityResolver(fake_api.get_profile)
        async with _session(fake_api, group_id, identity=identity) as session:
            assert session.identity is identity


class TestSend:
    @pytest.mark.parametrize("text", ["", "   ", "\n\t", "x" * (MESSAGE_MAX_LENGTH + 1)])
    async def test_rejected_before_network(self, fake_api, group_id, text):
        async with _session(fake_api, group_id) as session:
            with pytest.raises(ChatValidationError):
                await session.send(text)
        assert fake_api.sent == []

    async def test_scenario_a_plain_send(self, fake_api, group_id):
        async with _session(fake_api, group_id) as session:
            result = await session.send("Hello team")

            assert result.bot_message is None
            assert [m.body for m in session.messages] == ["Hello team"]
            assert fake_api.broadcasts == [result.user_message]

    async def test_scenario_b_bot_command(self, fake_api, group_id):
        async with _session(fake_api, group_id) as session:
            result = await session.send("@bot plan something fun")

            bodies = [m.body for m in session.messages]
            assert bodies == ["@bot plan something fun", fake_api.bot_reply]
            assert result.bot_message.author_profile.display_name == BOT_DISPLAY_NAME
            # 只广播自己的消息，Bot 回复由服务端推送
            assert fake_api.broadcasts == [result.user_message]

    async def test_ask_bot_uses_bot_query_kind(self, fake_api, group_id):
        async with _session(fake_api, group_id) as session:
            result = await session.ask_bot("what is on this week?")
        assert fake_api.sent == [("what is on this week?", MessageKind.BOT_QUERY)]
        assert result.bot_message is not None

    @pytest.mark.parametrize("text", ["@bot", "@bot, any movie ideas"])
    async def test_short_command_sent_as_bot_query(self, fake_api, group_id, text):
        """服务端不触发的命令形式改用 bot_query 类型发送"""
        async with _session(fake_api, group_id) as session:
            result = await session.send(text)
        assert fake_api.sent == [(text, MessageKind.BOT_QUERY)]
        assert result.bot_message is not None

    async def test_spaced_command_keeps_text_kind(self, fake_api, group_id):
        async with _session(fake_api, group_id) as session:
            await session.send("@bot plan something fun")
        assert fake_api.sent == [("@bot plan something fun", MessageKind.TEXT)]

    async def test_echo_after_send_not_duplicated(self, fake_api, group_id, eventually):
        async with _session(fake_api, group_id) as session:
            await eventually(lambda: len(fake_api.broadcast_subscriptions) == 1)
            result = await session.send("Hello team")
            # 广播回声到达后仍只有一条
            await asyncio.sleep(0.05)
            assert [m.id for m in session.messages] == [result.user_message.id]

    async def test_one_send_in_flight(self, fake_api, group_id):
        async with _session(fake_api, group_id) as session:
            await asyncio.gather(session.send("one"), session.send("two"), session.send("three"))

        assert fake_api.max_in_flight == 1
        assert [body for body, _ in fake_api.sent] == ["one", "two", "three"]

    async def test_late_result_discarded(self, fake_api, group_id):
        fake_api.send_gate = asyncio.Event()
        session = _session(fake_api, group_id)
        await session.open()

        pending = asyncio.create_task(session.send("sent while leaving"))
        await asyncio.sleep(0.01)
        await session.close()
        fake_api.send_gate.set()

        assert await pending is None
        assert session.messages == []
        assert fake_api.broadcasts == []


class TestHistory:
    async def test_load_older(self, fake_api, group_id, make_message):
        fake_api.history = [make_message(i) for i in range(1, 6)]

        async with _session(fake_api, group_id, page_limit=2) as session:
            assert await session.load_older() == 2
            assert await session.load_older() == 1
            assert session.engine.has_more is False
            assert await session.load_older() == 0
            assert [m.body for m in session.messages] == [f"message {i}" for i in range(1, 6)]

    async def test_insert_before_subscribe_recovered(
        self, fake_api, group_id, make_message, eventually
    ):
        """首页加载与订阅建立之间写入的消息在订阅建立后补齐"""
        fake_api.history = [make_message(1)]
        late = make_message(2)
        load_page = fake_api.fetch_page
        inserted = False

        async def fetch_then_insert(*args, **kwargs):
            nonlocal inserted
            page = await load_page(*args, **kwargs)
            if not inserted:
                inserted = True
                fake_api.history.append(late)
                # 此时还没有订阅者，插入通知无人接收
                fake_api.push_insert(to_row(late, SchemaVariant.CHAT_MESSAGES))
            return page

        fake_api.fetch_page = fetch_then_insert
        async with _session(fake_api, group_id) as session:
            assert [m.body for m in session.messages] == ["message 1"]
            await eventually(lambda: late.id in session.engine)
            assert [m.body for m in session.messages] == ["message 1", "message 2"]

    async def test_resync_heals_gap(self, fake_api, group_id, make_message, eventually):
        fake_api.history = [make_message(1)]

        async with _session(fake_api, group_id) as session:
            await eventually(lambda: len(fake_api.feed_subscriptions) == 1)
            # 推送断开期间其他成员发送的消息
            fake_api.history += [make_message(2), make_message(3)]

            assert await session.resync() == 2
            assert [m.body for m in session.messages] == ["message 1", "message 2", "message 3"]


class TestAttachment:
    async def test_send_attachment(self, fake_api, group_id):
        uploader = FakeUploader()

        async with _session(fake_api, group_id) as session:
            result = await session.send_attachment("photo.png", b"\x89PNG", uploader)

        path, size, content_type = uploader.uploads[0]
        assert path.startswith(f"{group_id}/alice/")
        assert path.endswith(".png")
        assert (size, content_type) == (4, "image/png")
        assert fake_api.sent == [(uploader.url, MessageKind.ATTACHMENT)]
        assert result.user_message.body == uploader.url

    async def test_empty_attachment_rejected(self, fake_api, group_id):
        async with _session(fake_api, group_id) as session:
            with pytest.raises(ChatValidationError):
                await session.send_attachment("empty.txt", b"", FakeUploader())
        assert fake_api.sent == []
