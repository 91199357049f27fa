"""LoggingMiddleware -- 请求级日志

每个请求绑定 request_id（优先使用客户端的 X-Request-ID，否则生成 ULID），
并在响应头中回传，浏览器端日志与服务端日志可按同一 ID 关联。
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

REQUEST_ID_HEADER = "X-Request-ID"

log = structlog.get_logger()


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(ULID())
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.monotonic()
        response = await call_next(request)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        # SSE 连接在流结束前就会返回响应对象，这里只记录建立耗时
        if response.status_code >= 500:
            log.warning("request_failed", status_code=response.status_code, duration_ms=elapsed_ms)
        else:
            log.info("request_completed", status_code=response.status_code, duration_ms=elapsed_ms)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
