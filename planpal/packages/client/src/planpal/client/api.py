"""ChatApiClient -- 网关 REST / SSE 客户端

REST 调用返回领域模型；SSE 端点以 data: 行逐条解析为 dict。
非 2xx 响应统一转为 ChatApiError（保留网关的 error.code）。
ChatApiClient 同时满足 FeedSource 与 BroadcastTransport 协议。
"""

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx
import structlog
from planpal.core.models import (
    ChatbotResult,
    ChatMessage,
    MessageKind,
    MessagePage,
    Profile,
    SchemaVariant,
)
from pydantic import BaseModel

from .config import REQUEST_TIMEOUT_S, get_api_url

log = structlog.get_logger()

API_PREFIX = "/api/v1"


class ChatApiError(Exception):
    """网关返回的错误响应"""

    def __init__(self, status_code: int, code: str, message: str) -> None:
        super().__init__(f"{status_code} {code}: {message}")
        self.status_code = status_code
        self.code = code
        self.message = message


class SendResult(BaseModel):
    """发送结果：Bot 命令时附带 Bot 回复"""

    user_message: ChatMessage
    bot_message: ChatMessage | None = None


def _error_from(response: httpx.Response) -> ChatApiError:
    try:
        error = response.json().get("error") or {}
    except (ValueError, AttributeError):
        error = {}
    return ChatApiError(
        status_code=response.status_code,
        code=error.get("code", "HTTP_ERROR"),
        message=error.get("message", response.reason_phrase),
    )


class ChatApiClient:
    """网关客户端"""

    def __init__(
        self,
        token: str,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            token: Bearer token
            base_url: 网关地址，None 时读取 PLANPAL_API_URL
            http_client: 外部传入的 httpx 客户端（测试中使用 ASGITransport），
                传入时由调用方负责关闭
        """
        self._headers = {"Authorization": f"Bearer {token}"}
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url or get_api_url(),
            timeout=REQUEST_TIMEOUT_S,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> "ChatApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        response = await self._http.request(
            method, f"{API_PREFIX}{path}", headers=self._headers, **kwargs
        )
        if response.status_code >= 400:
            error = _error_from(response)
            log.warning(
                "chat_api_error",
                method=method,
                path=path,
                status_code=error.status_code,
                code=error.code,
            )
            raise error
        return response.json()

    async def fetch_page(self, group_id: str, limit: int, offset: int = 0) -> MessagePage:
        data = await self._request(
            "GET",
            f"/chat/{group_id}/messages",
            params={"limit": limit, "offset": offset},
        )
        return MessagePage(
            messages=[ChatMessage.from_wire(m) for m in data["messages"]],
            count=data["count"],
            limit=data["limit"],
            offset=data["offset"],
        )

    async def fetch_recent(self, group_id: str) -> list[ChatMessage]:
        data = await self._request("GET", f"/chat/{group_id}/recent")
        return [ChatMessage.from_wire(m) for m in data["messages"]]

    async def send_message(
        self,
        group_id: str,
        body: str,
        kind: MessageKind = MessageKind.TEXT,
    ) -> SendResult:
        data = await self._request(
            "POST",
            f"/chat/{group_id}/messages",
            json={"message": body, "message_type": MessageKind(kind).value},
        )
        if "userMessage" in data:
            bot = data.get("botMessage")
            return SendResult(
                user_message=ChatMessage.from_wire(data["userMessage"]),
                bot_message=ChatMessage.from_wire(bot) if bot else None,
            )
        return SendResult(user_message=ChatMessage.from_wire(data))

    async def query_chatbot(self, group_id: str, message: str) -> ChatbotResult:
        data = await self._request(
            "POST",
            "/chatbot/query",
            json={"groupId": group_id, "message": message},
        )
        return ChatbotResult(
            response=data["response"],
            message=ChatMessage.from_wire(data["message"]) if data.get("message") else None,
            timestamp=data["timestamp"],
            actions=data.get("actions") or {},
        )

    async def get_profile(self, user_id: str) -> Profile | None:
        """查询作者资料，不存在时返回 None"""
        try:
            data = await self._request("GET", f"/profiles/{user_id}")
        except ChatApiError as e:
            if e.status_code == 404:
                return None
            raise
        return Profile.model_validate(data)

    async def detect_schema(self, group_id: str) -> SchemaVariant:
        data = await self._request("GET", f"/chat/{group_id}/schema")
        return SchemaVariant(data["variant"])

    async def broadcast(self, group_id: str, message: ChatMessage) -> int:
        data = await self._request(
            "POST",
            f"/chat/{group_id}/broadcast",
            json={"event": "message", "payload": {"message": message.to_wire()}},
        )
        return data["delivered"]

    async def stream_feed(
        self, group_id: str, variant: SchemaVariant
    ) -> AsyncIterator[dict[str, Any]]:
        """插入通知流，逐条产出 {"new": row}"""
        async for event in self._stream(
            f"/chat/{group_id}/feed", params={"table": SchemaVariant(variant).value}
        ):
            yield event

    async def stream_broadcast(self, group_id: str) -> AsyncIterator[dict[str, Any]]:
        """广播流，逐条产出 {"event": "message", "payload": {...}}"""
        async for event in self._stream(f"/chat/{group_id}/broadcast"):
            yield event

    async def _stream(self, path: str, params: dict | None = None) -> AsyncIterator[dict]:
        async with self._http.stream(
            "GET",
            f"{API_PREFIX}{path}",
            params=params,
            headers=self._headers,
            timeout=httpx.Timeout(REQUEST_TIMEOUT_S, read=None),
        ) as response:
            if response.status_code >= 400:
                await response.aread()
                raise _error_from(response)
            async for line in response.aiter_lines():
                if line.startswith("data:"):
                    yield json.loads(line[len("data:"):].strip())

