"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + 实时通道 + Bot 流水线初始化 + 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from planpal.core.config import get_db_path
from planpal.core.exceptions import ChatValidationError, PlanPalError
from planpal.core.store import StoreGroup, create_store_group
from planpal.provider import (
    DegradedReplyAdapter,
    FallbackManager,
    LiteLLMClient,
    ProviderConfig,
    load_provider_config,
)
from starlette.responses import JSONResponse

from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import chat, chatbot, feed, health, profiles
from .services.chatbot_service import ChatbotService
from .services.feed_hub import BroadcastHub, ChangeFeedHub

log = structlog.get_logger()

API_PREFIX = "/api/v1"


def build_chatbot_service(
    store_group: StoreGroup,
    feed_hub: ChangeFeedHub,
    provider_config: ProviderConfig,
) -> tuple[ChatbotService, LiteLLMClient | None]:
    """根据配置组装 Bot 流水线

    Returns:
        (ChatbotService, LiteLLMClient 或 None)；static 模式下无 client
    """
    if provider_config.llm_mode == "litellm":
        llm_client = LiteLLMClient(
            model=provider_config.model,
            api_key=provider_config.api_key.get_secret_value(),
            api_base=provider_config.api_base,
            timeout_s=provider_config.timeout_s,
            max_tokens=provider_config.max_tokens,
        )
        fallback_manager = FallbackManager(primary=llm_client, fallback=DegradedReplyAdapter())
        log.info(
            "chatbot_initialized",
            mode="litellm",
            model=provider_config.model,
            configured=provider_config.is_configured,
        )
    else:
        llm_client = None
        fallback_manager = FallbackManager(primary=DegradedReplyAdapter(), fallback=None)
        log.info("chatbot_initialized", mode="static")

    service = ChatbotService(store_group, fallback_manager, feed_hub)
    return service, llm_client


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB 和 Bot 组件，关闭时清理连接"""
    store_group = await create_store_group(get_db_path())
    app.state.store_group = store_group

    app.state.feed_hub = ChangeFeedHub()
    app.state.broadcast_hub = BroadcastHub()

    provider_config = load_provider_config()
    app.state.provider_config = provider_config
    chatbot_service, llm_client = build_chatbot_service(
        store_group, app.state.feed_hub, provider_config
    )
    app.state.chatbot_service = chatbot_service
    app.state.llm_client = llm_client

    yield

    if getattr(app.state, "store_group", None):
        await app.state.store_group.conn.close()


async def planpal_error_handler(request: Request, exc: PlanPalError) -> JSONResponse:
    """领域异常 -> {"error": {"code", "message"}}"""
    if exc.status_code >= 500:
        log.error("request_failed", code=exc.code, error=exc.message)
    error = {"code": exc.code, "message": exc.message}
    if isinstance(exc, ChatValidationError) and exc.field:
        error["field"] = exc.field
    return JSONResponse(status_code=exc.status_code, content={"error": error})


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """请求模型校验失败统一映射为 400"""
    errors = exc.errors()
    first = errors[0] if errors else {}
    error = {
        "code": ChatValidationError.code,
        "message": first.get("msg", "Invalid request"),
    }
    if loc := first.get("loc"):
        error["field"] = ".".join(str(part) for part in loc[1:]) or str(loc[0])
    return JSONResponse(status_code=400, content={"error": error})


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="PlanPal Chat Gateway",
        version="0.1.0",
        description="PlanPal 群聊同步 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    app.add_exception_handler(PlanPalError, planpal_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # 初始化日志
    setup_logging()
    setup_logfire(app)

    # 注册路由
    app.include_router(chat.router, prefix=API_PREFIX, tags=["chat"])
    app.include_router(chatbot.router, prefix=API_PREFIX, tags=["chatbot"])
    app.include_router(feed.router, prefix=API_PREFIX, tags=["feed"])
    app.include_router(profiles.router, prefix=API_PREFIX, tags=["profiles"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
