"""ReconciliationEngine -- 群聊消息列表的唯一写入方

分页、变更推送、广播回声、本地发送四条通道的消息都经由此处合并：
- 按 id 去重，同一条消息只出现一次
- 不属于本群组的消息被丢弃
- 已插入的条目不重新排序；新消息追加到末尾，历史页只前插严格更早的消息

所有修改均为同步方法，在单个事件循环内天然原子。
"""

from collections.abc import Callable, Iterable

import structlog
from planpal.core.config import DEFAULT_PAGE_LIMIT
from planpal.core.models import ChatMessage

log = structlog.get_logger()

Listener = Callable[[list[ChatMessage]], None]


class ReconciliationEngine:
    """单个群组视图的有序消息列表"""

    def __init__(self, group_id: str, page_limit: int = DEFAULT_PAGE_LIMIT) -> None:
        self.group_id = group_id
        self.page_limit = page_limit
        self._messages: list[ChatMessage] = []
        self._ids: set[str] = set()
        self._next_offset = 0
        self._has_more = False
        self._listeners: list[Listener] = []

    @property
    def messages(self) -> list[ChatMessage]:
        """当前列表的快照"""
        return list(self._messages)

    @property
    def has_more(self) -> bool:
        return self._has_more

    @property
    def next_offset(self) -> int:
        """下一次加载历史页使用的 offset"""
        return self._next_offset

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._ids

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """注册变更回调，返回取消函数"""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _accept(self, message: ChatMessage) -> bool:
        if message.group_id != self.group_id:
            log.warning(
                "cross_group_message_dropped",
                group_id=self.group_id,
                message_group_id=message.group_id,
                message_id=message.id,
            )
            return False
        return message.id not in self._ids

    def _notify(self) -> None:
        snapshot = self.messages
        for listener in list(self._listeners):
            listener(snapshot)

    def apply_initial_page(self, messages: Iterable[ChatMessage]) -> None:
        """用最新一页替换整个列表"""
        page = list(messages)
        self._messages = []
        self._ids = set()
        for message in page:
            if self._accept(message):
                self._messages.append(message)
                self._ids.add(message.id)
        self._next_offset = len(page)
        self._has_more = len(page) == self.page_limit
        self._notify()

    def apply_older_page(self, messages: Iterable[ChatMessage]) -> int:
        """前插严格早于当前最早消息的条目

        Returns:
            实际插入的条数
        """
        page = list(messages)
        earliest = self._messages[0].sort_key if self._messages else None
        older: list[ChatMessage] = []
        seen: set[str] = set()
        for message in page:
            if not self._accept(message) or message.id in seen:
                continue
            if earliest is None or message.sort_key < earliest:
                older.append(message)
                seen.add(message.id)

        self._messages = older + self._messages
        self._ids.update(m.id for m in older)
        self._next_offset += len(page)
        self._has_more = len(page) == self.page_limit
        if older:
            self._notify()
        return len(older)

    def apply_incoming(self, message: ChatMessage) -> bool:
        """推送或广播到达的消息，按 id 幂等，追加到末尾

        Returns:
            是否插入
        """
        if not self._accept(message):
            return False
        self._messages.append(message)
        self._ids.add(message.id)
        self._notify()
        return True

    def apply_optimistic(self, message: ChatMessage) -> bool:
        """本地发送后由存储确认的行"""
        return self.apply_incoming(message)

    def apply_catch_up(self, messages: Iterable[ChatMessage]) -> int:
        """断线补齐：缺失的 id 插入到有序位置，已有条目不移动

        Returns:
            实际插入的条数
        """
        inserted = 0
        for message in messages:
            if not self._accept(message):
                continue
            index = len(self._messages)
            while index > 0 and self._messages[index - 1].sort_key > message.sort_key:
                index -= 1
            self._messages.insert(index, message)
            self._ids.add(message.id)
            inserted += 1

        if inserted:
            log.info("feed_gap_healed", group_id=self.group_id, inserted=inserted)
            self._notify()
        return inserted
