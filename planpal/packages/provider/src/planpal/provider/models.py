"""生成结果模型"""

from pydantic import BaseModel, Field


class TokenUsage(BaseModel):
    """单次生成的 token 计数（字段名与 LiteLLM usage 对象一致）"""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)


class ModelCallResult(BaseModel):
    """Bot 回复生成结果，LiteLLMClient 与 DegradedReplyAdapter 共用"""

    content: str = Field(description="回复文本")
    model_name: str = Field(default="", description="模型名称，降级时为 degraded")
    provider: str = Field(default="", description="后端来源，如 gemini / static")
    duration_ms: int = Field(default=0, ge=0, description="生成耗时（毫秒）")
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    is_fallback: bool = Field(default=False, description="是否为降级说明文本")
    fallback_reason: str = Field(default="", description="降级原因，仅用于日志")
