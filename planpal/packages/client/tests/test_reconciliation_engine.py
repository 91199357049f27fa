"""ReconciliationEngine 测试

测试内容：
1. 初始页替换列表，has_more / next_offset
2. 历史页只前插严格更早的消息
3. 推送 / 广播 / 本地发送按 id 去重
4. 跨群组消息被丢弃
5. 断线补齐插入到有序位置，已有条目不移动
"""

from planpal.client import ReconciliationEngine


def _ids(engine: ReconciliationEngine) -> list[str]:
    return [m.id for m in engine.messages]


class TestPaging:
    def test_initial_page_full(self, make_message, group_id):
        engine = ReconciliationEngine(group_id, page_limit=3)
        page = [make_message(i) for i in (4, 5, 6)]

        engine.apply_initial_page(page)

        assert _ids(engine) == [m.id for m in page]
        assert engine.has_more is True
        assert engine.next_offset == 3

    def test_initial_page_short(self, make_message, group_id):
        engine = ReconciliationEngine(group_id, page_limit=3)
        engine.apply_initial_page([make_message(1)])
        assert engine.has_more is False
        assert engine.next_offset == 1

    def test_initial_page_replaces(self, make_message, group_id):
        engine = ReconciliationEngine(group_id, page_limit=3)
        engine.apply_incoming(make_message(1))
        engine.apply_initial_page([make_message(7)])
        assert _ids(engine) == [make_message(7).id]

    def test_older_page_prepends(self, make_message, group_id):
        engine = ReconciliationEngine(group_id, page_limit=2)
        engine.apply_initial_page([make_message(3), make_message(4)])

        inserted = engine.apply_older_page([make_message(1), make_message(2)])

        assert inserted == 2
        assert _ids(engine) == [make_message(i).id for i in (1, 2, 3, 4)]
        assert engine.next_offset == 4
        assert engine.has_more is True

    def test_older_page_skips_overlap(self, make_message, group_id):
        """新消息到达后 offset 偏移，历史页与现有条目重叠"""
        engine = ReconciliationEngine(group_id, page_limit=2)
        engine.apply_initial_page([make_message(3), make_message(4)])

        inserted = engine.apply_older_page([make_message(2), make_message(3)])

        assert inserted == 1
        assert _ids(engine) == [make_message(i).id for i in (2, 3, 4)]
        assert engine.next_offset == 4

    def test_older_page_short_ends_paging(self, make_message, group_id):
        engine = ReconciliationEngine(group_id, page_limit=2)
        engine.apply_initial_page([make_message(3), make_message(4)])
        engine.apply_older_page([make_message(1)])
        assert engine.has_more is False


class TestIncoming:
    def test_incoming_idempotent(self, make_message, group_id):
        engine = ReconciliationEngine(group_id)
        message = make_message(1)

        assert engine.apply_incoming(message) is True
        assert engine.apply_incoming(message) is False
        assert _ids(engine) == [message.id]
        assert message.id in engine

    def test_optimistic_then_echo(self, make_message, group_id):
        """本地发送后广播回声与推送再次到达，只保留一条"""
        engine = ReconciliationEngine(group_id)
        message = make_message(1, author_id="alice")

        engine.apply_optimistic(message)
        engine.apply_incoming(message)
        engine.apply_incoming(message.model_copy())

        assert len(engine.messages) == 1

    def test_incoming_appends_without_reordering(self, make_message, group_id):
        engine = ReconciliationEngine(group_id)
        engine.apply_incoming(make_message(5))
        engine.apply_incoming(make_message(2))
        assert _ids(engine) == [make_message(5).id, make_message(2).id]

    def test_cross_group_dropped(self, make_message, group_id):
        engine = ReconciliationEngine(group_id)
        assert engine.apply_incoming(make_message(1, group_id="other-group")) is False
        engine.apply_initial_page([make_message(2, group_id="other-group")])
        assert engine.messages == []


class TestCatchUp:
    def test_gap_filled_in_order(self, make_message, group_id):
        engine = ReconciliationEngine(group_id)
        engine.apply_initial_page([make_message(1), make_message(4)])
        engine.apply_incoming(make_message(6))

        inserted = engine.apply_catch_up(
            [make_message(i) for i in (2, 3, 4, 5, 6)]
        )

        assert inserted == 3
        assert _ids(engine) == [make_message(i).id for i in (1, 2, 3, 4, 5, 6)]

    def test_existing_entries_not_moved(self, make_message, group_id):
        engine = ReconciliationEngine(group_id)
        engine.apply_incoming(make_message(5))
        engine.apply_incoming(make_message(2))

        engine.apply_catch_up([make_message(3)])

        # 已插入的 5、2 保持相对顺序
        ids = _ids(engine)
        assert ids.index(make_message(5).id) < ids.index(make_message(2).id)
        assert make_message(3).id in engine

    def test_nothing_missing(self, make_message, group_id):
        engine = ReconciliationEngine(group_id)
        engine.apply_initial_page([make_message(1)])
        assert engine.apply_catch_up([make_message(1)]) == 0


class TestListeners:
    def test_listener_receives_snapshot(self, make_message, group_id):
        engine = ReconciliationEngine(group_id)
        snapshots = []
        unsubscribe = engine.subscribe(snapshots.append)

        engine.apply_incoming(make_message(1))
        engine.apply_incoming(make_message(1))
        unsubscribe()
        engine.apply_incoming(make_message(2))

        assert len(snapshots) == 1
        assert [m.id for m in snapshots[0]] == [make_message(1).id]
