"""实时通道路由 -- 变更推送与广播回声

GET  /api/v1/chat/{group_id}/schema: 当前聊天表变体
GET  /api/v1/chat/{group_id}/feed?table=: 插入通知 SSE（event: INSERT, data: {"new": row}）
首个事件为 status（data: {"status": "SUBSCRIBED"}），两条 SSE 通道相同。
GET  /api/v1/chat/{group_id}/broadcast: 广播 SSE（event: message）
POST /api/v1/chat/{group_id}/broadcast: 向群组广播一条完整消息（包括发送者自己）

两条通道都可能丢消息，客户端在每次订阅建立后通过 REST 补齐。
"""

import asyncio
import json
from typing import Any, Literal

import structlog
from fastapi import APIRouter, Depends, Query
from planpal.core.config import SSE_HEARTBEAT_INTERVAL, STREAM_SUBSCRIBED
from planpal.core.exceptions import ChatValidationError
from planpal.core.models import ChatMessage, SchemaVariant
from pydantic import BaseModel, ValidationError
from sse_starlette.sse import EventSourceResponse

from ..deps import (
    get_broadcast_hub,
    get_chat_service,
    get_current_user_id,
    get_feed_hub,
    get_store_group,
)
from ..services.chat_service import ChatService
from ..services.feed_hub import BroadcastHub, ChangeFeedHub, FanoutHub

log = structlog.get_logger()

router = APIRouter()


class BroadcastRequest(BaseModel):
    """广播请求体 {event: "message", payload: {message: {...}}}"""

    event: Literal["message"] = "message"
    payload: dict[str, Any]


async def _stream(hub: FanoutHub, key, event_name: str):
    """订阅 hub 并逐条转为 SSE 事件，空闲时发送心跳

    订阅建立后先发出 status 事件，客户端据此补齐订阅之前错过的消息。
    """
    queue = await hub.subscribe(key)
    try:
        yield {"event": "status", "data": json.dumps({"status": STREAM_SUBSCRIBED})}
        while True:
            try:
                item = await asyncio.wait_for(queue.get(), timeout=SSE_HEARTBEAT_INTERVAL)
                yield {"event": event_name, "data": json.dumps(item, ensure_ascii=False)}
            except TimeoutError:
                yield {"comment": "heartbeat"}
    finally:
        await hub.unsubscribe(key, queue)


@router.get("/chat/{group_id}/schema")
async def get_schema(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
    store_group=Depends(get_store_group),
):
    await service.ensure_member(group_id, user_id)
    variant = await store_group.message_store.detect_variant()
    return {"group_id": group_id, "variant": variant.value}


@router.get("/chat/{group_id}/feed")
async def stream_feed(
    group_id: str,
    table: SchemaVariant | None = Query(default=None, description="订阅的聊天表，缺省时探测"),
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
    store_group=Depends(get_store_group),
    feed_hub: ChangeFeedHub = Depends(get_feed_hub),
):
    """插入通知 SSE，每个连接只订阅一个 (group, 变体)"""
    await service.ensure_member(group_id, user_id)
    variant = table or await store_group.message_store.detect_variant()
    log.info("feed_subscribed", group_id=group_id, user_id=user_id, table=variant.value)
    return EventSourceResponse(_stream(feed_hub, (group_id, variant), "INSERT"))


@router.get("/chat/{group_id}/broadcast")
async def stream_broadcast(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
    broadcast_hub: BroadcastHub = Depends(get_broadcast_hub),
):
    await service.ensure_member(group_id, user_id)
    return EventSourceResponse(_stream(broadcast_hub, group_id, "message"))


@router.post("/chat/{group_id}/broadcast")
async def post_broadcast(
    group_id: str,
    body: BroadcastRequest,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
    broadcast_hub: BroadcastHub = Depends(get_broadcast_hub),
):
    """广播一条已持久化的消息，返回投递的订阅者数量"""
    await service.ensure_member(group_id, user_id)
    raw = body.payload.get("message")
    if not isinstance(raw, dict):
        raise ChatValidationError("payload.message is required", field="payload")
    try:
        message = ChatMessage.from_wire(raw)
    except (KeyError, ValueError, ValidationError) as e:
        raise ChatValidationError(f"Invalid broadcast message: {e}", field="payload") from e

    delivered = await broadcast_hub.publish_message(group_id, message)
    return {"delivered": delivered}
