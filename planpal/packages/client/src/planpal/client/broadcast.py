"""BroadcastChannel -- 广播回声

加入群组频道后发送者自己也会收到回声；载荷为
{"event": "message", "payload": {"message": {...}}}。
与变更推送重复到达的消息由 ReconciliationEngine 按 id 去重。
"""

import asyncio
import contextlib
from collections.abc import AsyncIterator, Mapping
from typing import Any, Protocol

import httpx
import structlog
from planpal.core.models import ChatMessage

from .api import ChatApiError
from .config import STREAM_RETRY_DELAY_S
from .reconciler import ReconciliationEngine
from .streams import consume_stream

log = structlog.get_logger()


class BroadcastTransport(Protocol):
    """广播通道传输"""

    def stream_broadcast(self, group_id: str) -> AsyncIterator[dict[str, Any]]: ...

    async def broadcast(self, group_id: str, message: ChatMessage) -> int: ...


class BroadcastChannel:
    """单个群组的广播频道"""

    def __init__(
        self,
        transport: BroadcastTransport,
        engine: ReconciliationEngine,
        *,
        retry_delay_s: float = STREAM_RETRY_DELAY_S,
    ) -> None:
        self._transport = transport
        self._engine = engine
        self._retry_delay_s = retry_delay_s
        self._task: asyncio.Task | None = None

    @property
    def group_id(self) -> str:
        return self._engine.group_id

    @property
    def is_joined(self) -> bool:
        return self._task is not None and not self._task.done()

    async def join(self) -> None:
        if self.is_joined:
            return
        group_id = self.group_id
        self._task = asyncio.create_task(
            consume_stream(
                "broadcast",
                lambda: self._transport.stream_broadcast(group_id),
                self.handle,
                retry_delay_s=self._retry_delay_s,
                group_id=group_id,
            )
        )

    async def leave(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def send(self, message: ChatMessage) -> int:
        """广播一条已持久化的消息；广播失败不影响发送结果

        Returns:
            投递的订阅者数量
        """
        if message.group_id != self.group_id:
            log.warning(
                "broadcast_group_mismatch",
                channel_group_id=self.group_id,
                message_group_id=message.group_id,
            )
            return 0
        try:
            return await self._transport.broadcast(self.group_id, message)
        except (ChatApiError, httpx.HTTPError) as e:
            log.warning("broadcast_send_failed", group_id=self.group_id, error=str(e))
            return 0

    async def handle(self, envelope: Mapping[str, Any]) -> ChatMessage | None:
        """处理一条广播载荷，返回交给 engine 的消息"""
        if envelope.get("event") != "message":
            return None
        message = ChatMessage.from_wire(envelope["payload"]["message"])
        if message.group_id != self.group_id:
            log.warning(
                "broadcast_group_mismatch",
                channel_group_id=self.group_id,
                message_group_id=message.group_id,
            )
            return None
        self._engine.apply_incoming(message)
        return message
