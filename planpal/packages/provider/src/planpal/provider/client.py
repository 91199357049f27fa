"""LiteLLMClient -- Bot 回复的语言模型后端

litellm.acompletion() 直连 provider，或经由配置的 api_base（LiteLLM Proxy）。
失败按原因分为三类，DegradedReplyAdapter 据此选择说明文本：
- 未配置 key: ProviderNotConfiguredError（不发起请求）
- 连接失败 / 超时: BackendUnreachableError
- 后端拒绝（key 无效、配额耗尽等）: ProviderError
"""

import time
from typing import Any

import httpx
import structlog
from litellm import acompletion

from .exceptions import BackendUnreachableError, ProviderError, ProviderNotConfiguredError
from .models import ModelCallResult, TokenUsage

log = structlog.get_logger()

# Proxy 存活探测超时（秒）
HEALTH_CHECK_TIMEOUT_S = 5

_UNREACHABLE_TYPES = (ConnectionError, TimeoutError, OSError, httpx.TransportError)

# litellm 自有的连接类异常，按名称匹配
_UNREACHABLE_NAMES = frozenset({"APIConnectionError", "APITimeoutError", "Timeout"})


def _is_unreachable(error: Exception) -> bool:
    return isinstance(error, _UNREACHABLE_TYPES) or type(error).__name__ in _UNREACHABLE_NAMES


def _usage_of(response: Any) -> TokenUsage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()
    try:
        return TokenUsage(
            prompt_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
            completion_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
            total_tokens=int(getattr(usage, "total_tokens", 0) or 0),
        )
    except (TypeError, ValueError):
        return TokenUsage()


class LiteLLMClient:
    """complete(messages) -> ModelCallResult"""

    def __init__(
        self,
        model: str,
        api_key: str = "",
        api_base: str | None = None,
        timeout_s: int = 30,
        max_tokens: int | None = None,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._api_base = api_base.rstrip("/") if api_base else None
        self._timeout_s = timeout_s
        self._max_tokens = max_tokens

    @property
    def model(self) -> str:
        return self._model

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _request_kwargs(
        self,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int | None,
        extra: dict[str, Any],
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": messages,
            "api_key": self._api_key,
            "temperature": temperature,
            "timeout": self._timeout_s,
            **extra,
        }
        if self._api_base:
            kwargs["api_base"] = self._api_base
        limit = max_tokens or self._max_tokens
        if limit is not None:
            kwargs["max_tokens"] = limit
        return kwargs

    def _to_result(self, response: Any, duration_ms: int) -> ModelCallResult:
        hidden = getattr(response, "_hidden_params", None) or {}
        return ModelCallResult(
            content=response.choices[0].message.content or "",
            model_name=getattr(response, "model", None) or self._model,
            provider=hidden.get("custom_llm_provider") or self._model.split("/", 1)[0],
            duration_ms=duration_ms,
            token_usage=_usage_of(response),
        )

    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int | None = None,
        **kwargs,
    ) -> ModelCallResult:
        """生成一条回复

        Raises:
            ProviderNotConfiguredError: 未配置 API key
            BackendUnreachableError: 连接失败或超时
            ProviderError: 后端返回错误
        """
        if not self.is_configured:
            raise ProviderNotConfiguredError()

        request = self._request_kwargs(messages, temperature, max_tokens, kwargs)
        started = time.monotonic()
        try:
            response = await acompletion(**request)
        except Exception as e:
            log.error(
                "llm_call_failed",
                model=self._model,
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            if _is_unreachable(e):
                raise BackendUnreachableError(self._api_base or self._model, e) from e
            raise ProviderError(f"LLM call failed: {e}") from e

        result = self._to_result(response, int((time.monotonic() - started) * 1000))
        log.info(
            "llm_call_completed",
            model=result.model_name,
            provider=result.provider,
            duration_ms=result.duration_ms,
            total_tokens=result.token_usage.total_tokens,
        )
        return result

    async def health_check(self) -> bool:
        """后端是否可用，不抛异常

        经由 Proxy 时请求 {api_base}/health/liveliness；直连时只检查 key。
        """
        if not self.is_configured:
            return False
        if not self._api_base:
            return True

        url = f"{self._api_base}/health/liveliness"
        try:
            async with httpx.AsyncClient() as http:
                response = await http.get(url, timeout=HEALTH_CHECK_TIMEOUT_S)
        except Exception as e:
            log.debug("llm_health_check_failed", url=url, error=str(e))
            return False
        return response.status_code == 200
