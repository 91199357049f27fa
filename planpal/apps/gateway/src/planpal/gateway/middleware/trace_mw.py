"""TraceMiddleware -- 群组级追踪

为聊天相关请求绑定 group_id，贯穿消息写入、变更推送与 Bot 流水线日志。
group_id 从路径 /api/v1/chat/{group_id}/... 中提取；
/chatbot/query 的 group_id 在请求体中，由路由自行绑定。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response


def extract_group_id(path: str) -> str | None:
    """从 /.../chat/{group_id}/... 提取 group_id"""
    parts = [p for p in path.split("/") if p]
    for i, part in enumerate(parts):
        if part == "chat" and i + 1 < len(parts):
            return parts[i + 1]
    return None


class TraceMiddleware(BaseHTTPMiddleware):
    """群组级追踪中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if group_id := extract_group_id(request.url.path):
            structlog.contextvars.bind_contextvars(group_id=group_id)

        return await call_next(request)
