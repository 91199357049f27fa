"""内存中的消息扇出 -- 变更推送与广播回声

每个订阅者持有一个 asyncio.Queue，支持 subscribe/unsubscribe/publish。
- ChangeFeedHub: 按 (group_id, 表变体) 推送插入通知 {"new": row}
- BroadcastHub: 按 group_id 推送 {"event": "message", "payload": {"message": ...}}，
  发送者自己的订阅同样收到（self-echo）

队列已满的订阅者视为失效连接并被移除，由客户端重连后通过 REST 补齐。
"""

import asyncio
from collections import defaultdict
from collections.abc import Hashable
from typing import Any

import structlog
from planpal.core.models import ChatMessage, SchemaVariant

log = structlog.get_logger()


class FanoutHub:
    """基于 asyncio.Queue 的发布/订阅"""

    def __init__(self, queue_maxsize: int = 100) -> None:
        # key -> set of asyncio.Queue
        self._subscribers: dict[Hashable, set[asyncio.Queue]] = defaultdict(set)
        self._queue_maxsize = queue_maxsize

    async def subscribe(self, key: Hashable) -> asyncio.Queue:
        """订阅指定 key 的消息流

        Returns:
            asyncio.Queue 实例，新消息会被推送到此队列
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_maxsize)
        self._subscribers[key].add(queue)
        return queue

    async def unsubscribe(self, key: Hashable, queue: asyncio.Queue) -> None:
        """取消订阅"""
        self._subscribers[key].discard(queue)
        if not self._subscribers[key]:
            del self._subscribers[key]

    def subscriber_count(self, key: Hashable) -> int:
        return len(self._subscribers.get(key, ()))

    async def publish(self, key: Hashable, item: Any) -> int:
        """向指定 key 的所有订阅者推送

        Returns:
            成功投递的订阅者数量
        """
        delivered = 0
        dead_queues = []
        for queue in self._subscribers.get(key, set()):
            try:
                queue.put_nowait(item)
                delivered += 1
            except asyncio.QueueFull:
                dead_queues.append(queue)

        # 清理已满的队列
        for q in dead_queues:
            self._subscribers[key].discard(q)
        if dead_queues:
            log.warning("fanout_subscriber_dropped", key=str(key), dropped=len(dead_queues))
        if key in self._subscribers and not self._subscribers[key]:
            del self._subscribers[key]
        return delivered


class ChangeFeedHub(FanoutHub):
    """插入通知，按 (group_id, 表变体) 订阅"""

    async def subscribe_inserts(self, group_id: str, variant: SchemaVariant) -> asyncio.Queue:
        return await self.subscribe((group_id, SchemaVariant(variant)))

    async def unsubscribe_inserts(
        self, group_id: str, variant: SchemaVariant, queue: asyncio.Queue
    ) -> None:
        await self.unsubscribe((group_id, SchemaVariant(variant)), queue)

    async def publish_insert(
        self,
        group_id: str,
        variant: SchemaVariant,
        row: dict[str, Any],
    ) -> int:
        """推送一行插入通知（原始变体行，字段名未规范化）"""
        return await self.publish((group_id, SchemaVariant(variant)), {"new": row})


class BroadcastHub(FanoutHub):
    """广播回声，按 group_id 订阅"""

    async def publish_message(self, group_id: str, message: ChatMessage) -> int:
        """广播完整消息；跨群组载荷被拒绝"""
        if message.group_id != group_id:
            log.warning(
                "broadcast_group_mismatch",
                channel_group_id=group_id,
                message_group_id=message.group_id,
            )
            return 0
        return await self.publish(group_id, broadcast_envelope(message))


def broadcast_envelope(message: ChatMessage) -> dict[str, Any]:
    """广播载荷格式"""
    return {"event": "message", "payload": {"message": message.to_wire()}}
