"""Bot 查询路由

POST /api/v1/chatbot/query: 请求体合法且调用方是群组成员时恒返回 200，
生成或持久化失败体现为降级文本或 message=null。
成员校验本身因存储失败而无法完成时，同样返回 200 的通用说明。
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends
from planpal.core.config import MESSAGE_MAX_LENGTH
from planpal.core.exceptions import UpstreamError
from pydantic import BaseModel, Field

from ..deps import get_chat_service, get_chatbot_service, get_current_user_id
from ..services.chat_service import ChatService
from ..services.chatbot_service import ChatbotService, unavailable_result

router = APIRouter()
log = structlog.get_logger()


class ChatbotQueryRequest(BaseModel):
    """Bot 查询请求体"""

    groupId: UUID = Field(description="群组 ID")
    message: str = Field(min_length=1, max_length=MESSAGE_MAX_LENGTH, description="查询文本")


@router.post("/chatbot/query")
async def query_chatbot(
    body: ChatbotQueryRequest,
    user_id: str = Depends(get_current_user_id),
    chat_service: ChatService = Depends(get_chat_service),
    chatbot_service: ChatbotService = Depends(get_chatbot_service),
):
    group_id = str(body.groupId)
    structlog.contextvars.bind_contextvars(group_id=group_id)

    try:
        await chat_service.ensure_member(group_id, user_id)
    except UpstreamError as e:
        log.error("chatbot_membership_check_failed", user_id=user_id, error=e.message)
        return unavailable_result().to_wire()

    result = await chatbot_service.run(group_id, body.message, user_id=user_id)
    return result.to_wire()
