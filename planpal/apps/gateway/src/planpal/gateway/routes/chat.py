"""聊天消息路由

POST /api/v1/chat/{group_id}/messages: 发送消息（"@bot" 命令同步返回 Bot 回复）
GET  /api/v1/chat/{group_id}/messages: 分页查询，页内按时间正序
GET  /api/v1/chat/{group_id}/recent: 最近 24 小时消息
"""

from fastapi import APIRouter, Depends, Query
from planpal.core.config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT, MESSAGE_MAX_LENGTH
from planpal.core.models import MessageKind
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from ..deps import get_chat_service, get_current_user_id
from ..services.chat_service import ChatService

router = APIRouter()


class SendMessageRequest(BaseModel):
    """发送消息请求体"""

    message: str = Field(min_length=1, max_length=MESSAGE_MAX_LENGTH, description="消息正文")
    message_type: MessageKind = Field(default=MessageKind.TEXT, description="消息类型")


@router.post("/chat/{group_id}/messages")
async def send_message(
    group_id: str,
    body: SendMessageRequest,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """发送消息

    - 普通消息返回 201 + 消息
    - Bot 命令返回 201 + {userMessage, botMessage}；Bot 失败时只返回用户消息
    """
    user_message, bot_message = await service.send_with_bot(
        group_id, user_id, body.message, body.message_type
    )
    if bot_message is None:
        return JSONResponse(status_code=201, content=user_message.to_wire())
    return JSONResponse(
        status_code=201,
        content={
            "userMessage": user_message.to_wire(),
            "botMessage": bot_message.to_wire(),
        },
    )


@router.get("/chat/{group_id}/messages")
async def list_messages(
    group_id: str,
    limit: int = Query(default=DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    offset: int = Query(default=0, ge=0),
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    """分页查询消息，offset=0 为最新一页"""
    page = await service.list_messages(group_id, user_id, limit, offset)
    return {
        "messages": [m.to_wire() for m in page.messages],
        "group_id": group_id,
        "count": page.count,
        "limit": page.limit,
        "offset": page.offset,
    }


@router.get("/chat/{group_id}/recent")
async def list_recent(
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    messages = await service.list_recent(group_id, user_id)
    return {
        "messages": [m.to_wire() for m in messages],
        "group_id": group_id,
        "count": len(messages),
        "timeframe": "last 24 hours",
    }
