"""推送流消费循环 -- 断线重连 + 订阅建立后补齐"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import structlog
from planpal.core.config import STREAM_SUBSCRIBED

log = structlog.get_logger()


def is_subscribed_status(item: Any) -> bool:
    return isinstance(item, dict) and item.get("status") == STREAM_SUBSCRIBED


async def consume_stream(
    name: str,
    open_stream: Callable[[], AsyncIterator[dict[str, Any]]],
    handle: Callable[[dict[str, Any]], Awaitable[Any]],
    *,
    retry_delay_s: float,
    on_subscribed: Callable[[], Awaitable[Any]] | None = None,
    **log_context: Any,
) -> None:
    """持续消费推送流，直到所在任务被取消

    Args:
        name: 流名称（日志用）
        open_stream: 每次连接调用一次，返回事件迭代器
        handle: 单条事件处理；格式错误的事件被记录并跳过
        retry_delay_s: 断开后的重连间隔
        on_subscribed: 每次收到 SUBSCRIBED 状态后调用（含首次连接），
            补齐订阅建立之前错过的消息
    """
    while True:
        try:
            async for item in open_stream():
                if is_subscribed_status(item):
                    log.debug("stream_subscribed", stream=name, **log_context)
                    if on_subscribed is not None:
                        try:
                            await on_subscribed()
                        except Exception as e:
                            log.warning(
                                "stream_catch_up_failed", stream=name, error=str(e), **log_context
                            )
                    continue
                try:
                    await handle(item)
                except (KeyError, TypeError, ValueError) as e:
                    log.warning("stream_item_invalid", stream=name, error=str(e), **log_context)
            log.info("stream_ended", stream=name, **log_context)
        except Exception as e:
            log.warning(
                "stream_lost",
                stream=name,
                error=str(e),
                error_type=type(e).__name__,
                **log_context,
            )
        await asyncio.sleep(retry_delay_s)
