"""依赖注入模块 -- 通过 FastAPI Depends 注入 Store 与服务实例

实例通过 app.state 管理，在 lifespan 中初始化/清理。
身份认证由外部系统负责，这里只把 Bearer token 解析为用户 ID。
"""

from collections.abc import Callable

from fastapi import Depends, Request
from planpal.core.exceptions import AuthenticationError
from planpal.core.store import StoreGroup

from .services.chat_service import ChatService
from .services.chatbot_service import ChatbotService
from .services.feed_hub import BroadcastHub, ChangeFeedHub

Authenticator = Callable[[str], str | None]


def token_as_user_id(token: str) -> str | None:
    """默认认证器：token 即用户 ID（本地开发与测试）"""
    return token or None


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_feed_hub(request: Request) -> ChangeFeedHub:
    return request.app.state.feed_hub


def get_broadcast_hub(request: Request) -> BroadcastHub:
    return request.app.state.broadcast_hub


def get_chatbot_service(request: Request) -> ChatbotService:
    return request.app.state.chatbot_service


def get_chat_service(
    store_group: StoreGroup = Depends(get_store_group),
    feed_hub: ChangeFeedHub = Depends(get_feed_hub),
    chatbot_service: ChatbotService = Depends(get_chatbot_service),
) -> ChatService:
    return ChatService(store_group, feed_hub, chatbot_service)


def get_current_user_id(request: Request) -> str:
    """解析 Authorization: Bearer <token>

    Raises:
        AuthenticationError: 缺少或无效的 token
    """
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Missing bearer token")

    authenticate: Authenticator = (
        getattr(request.app.state, "authenticator", None) or token_as_user_id
    )
    user_id = authenticate(token)
    if not user_id:
        raise AuthenticationError("Invalid bearer token")
    return user_id
