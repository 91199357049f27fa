"""DegradedReplyAdapter -- 降级说明文本

后端未配置或调用失败时，返回确定性的、面向用户的说明文本，
流水线将其视为合法的生成结果继续后续阶段。
不向用户暴露底层异常细节。
"""

from .exceptions import ProviderNotConfiguredError
from .models import ModelCallResult

NOT_CONFIGURED_REPLY = (
    "Sorry, the chatbot is not configured yet. Please ask your administrator "
    "to add a language model API key (GEMINI_API_KEY) to the server environment."
)
INVALID_KEY_REPLY = (
    "There is an issue with the API key configuration. "
    "Please ask your administrator to verify the chatbot API key."
)
QUOTA_REPLY = (
    "The API quota has been exceeded. Please try again later or upgrade your API plan."
)
GENERIC_REPLY = "I'm having trouble responding right now. Please try again in a moment!"


def degraded_reply_for(error: Exception | None) -> str:
    """根据失败原因选择说明文本

    Args:
        error: 主调用的异常，None 表示未知原因

    Returns:
        说明文本
    """
    if isinstance(error, ProviderNotConfiguredError):
        return NOT_CONFIGURED_REPLY
    text = str(error or "").lower()
    if "api key" in text or "api_key" in text:
        return INVALID_KEY_REPLY
    if "quota" in text or "rate limit" in text:
        return QUOTA_REPLY
    return GENERIC_REPLY


class DegradedReplyAdapter:
    """降级适配器 -- complete(messages) -> ModelCallResult 接口

    FallbackManager 的降级后备统一使用此适配器；
    static 模式下也作为唯一的生成器使用。结果始终标记 is_fallback=True。
    """

    async def complete(
        self,
        messages: list[dict[str, str]],
        error: Exception | None = None,
        **kwargs,
    ) -> ModelCallResult:
        """返回降级说明文本

        Args:
            messages: 消息列表（不使用，保持接口一致）
            error: 主调用失败原因；static 模式下为 None
            **kwargs: 忽略
        """
        if error is None:
            error = ProviderNotConfiguredError()
        return ModelCallResult(
            content=degraded_reply_for(error),
            model_name="degraded",
            provider="static",
            duration_ms=0,
            is_fallback=True,
            fallback_reason=type(error).__name__,
        )
