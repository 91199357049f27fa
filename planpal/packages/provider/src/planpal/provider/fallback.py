"""FallbackManager -- Bot 回复生成链

每次生成都先走语言模型后端；后端失败时把异常交给降级生成器，
由它挑选面向用户的说明文本。没有"已降级"的持久状态，后端恢复后
下一次调用自动回到正常路径。
"""

import structlog

from .exceptions import ProviderError
from .models import ModelCallResult

log = structlog.get_logger()


class FallbackManager:
    """LiteLLMClient -> DegradedReplyAdapter 两级生成链"""

    def __init__(self, primary, fallback=None) -> None:
        """
        Args:
            primary: 首选生成器（LiteLLMClient；static 模式下为 DegradedReplyAdapter）
            fallback: 降级生成器，complete() 额外接收 error 参数；None 表示不降级
        """
        self._primary = primary
        self._fallback = fallback

    @property
    def primary(self):
        return self._primary

    async def call_with_fallback(
        self,
        messages: list[dict[str, str]],
        **kwargs,
    ) -> ModelCallResult:
        """生成一条回复

        Returns:
            首选生成器的结果；降级时 is_fallback=True 并附带 fallback_reason

        Raises:
            ProviderError: 未配置降级生成器，或降级生成器同样失败
        """
        try:
            return await self._primary.complete(messages=messages, **kwargs)
        except Exception as e:
            backend_error = e

        log.warning(
            "bot_backend_failed",
            error=str(backend_error),
            error_type=type(backend_error).__name__,
            has_fallback=self._fallback is not None,
        )
        if self._fallback is None:
            raise ProviderError(
                f"Primary call failed and no fallback configured: {backend_error}",
                recoverable=False,
            ) from backend_error

        try:
            degraded = await self._fallback.complete(messages=messages, error=backend_error)
        except Exception as fallback_error:
            log.error(
                "bot_fallback_failed",
                backend_error=str(backend_error),
                fallback_error=str(fallback_error),
            )
            raise ProviderError(
                f"Primary and fallback both failed. Primary: {backend_error}; "
                f"Fallback: {fallback_error}",
                recoverable=False,
            ) from fallback_error

        log.info("bot_reply_degraded", reason=type(backend_error).__name__)
        return degraded.model_copy(
            update={"is_fallback": True, "fallback_reason": f"Primary failed: {backend_error}"}
        )
