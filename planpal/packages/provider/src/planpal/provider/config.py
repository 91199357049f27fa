"""ProviderConfig -- Provider 配置加载

从环境变量加载配置，不硬编码密钥。
"""

import os
from typing import Literal

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()

DEFAULT_MODEL = "gemini/gemini-2.5-flash-lite"


class ProviderConfig(BaseModel):
    """Provider 包配置 -- 从环境变量加载

    环境变量:
        GEMINI_API_KEY / PLANPAL_LLM_API_KEY: 模型 API key（后者优先）
        PLANPAL_LLM_MODEL: LiteLLM 模型名（默认 gemini/gemini-2.5-flash-lite）
        PLANPAL_LLM_API_BASE: 可选的 API / LiteLLM Proxy 地址
        PLANPAL_LLM_MODE: 运行模式（litellm/static）
        PLANPAL_LLM_TIMEOUT_S: 调用超时（秒，默认 30）
        PLANPAL_LLM_MAX_TOKENS: 最大生成 token 数（默认 400）
    """

    api_key: SecretStr = Field(
        default=SecretStr(""),
        description="语言模型 API key",
    )
    model: str = Field(
        default=DEFAULT_MODEL,
        description="LiteLLM 模型名",
    )
    api_base: str | None = Field(
        default=None,
        description="可选的 API 基础 URL（如 LiteLLM Proxy）",
    )
    llm_mode: Literal["litellm", "static"] = Field(
        default="litellm",
        description="运行模式：litellm 调用后端 / static 只返回说明文本",
    )
    timeout_s: int = Field(
        default=30,
        ge=1,
        description="调用超时（秒）",
    )
    max_tokens: int = Field(
        default=400,
        ge=1,
        description="最大生成 token 数（回复上限约 200 词）",
    )

    @property
    def is_configured(self) -> bool:
        """litellm 模式且提供了 API key"""
        return self.llm_mode == "litellm" and bool(self.api_key.get_secret_value())


def _read_int(env_var: str, default: int) -> int | None:
    val = os.environ.get(env_var)
    if not val:
        return None
    try:
        return int(val)
    except ValueError:
        log.warning(
            "invalid_int_config",
            env_var=env_var,
            value=val,
            fallback=default,
        )
        # 使用默认值，不阻塞启动
        return None


def load_provider_config() -> ProviderConfig:
    """从环境变量加载 Provider 配置

    Returns:
        ProviderConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("PLANPAL_LLM_API_KEY") or os.environ.get("GEMINI_API_KEY"):
        kwargs["api_key"] = SecretStr(val)

    if val := os.environ.get("PLANPAL_LLM_MODEL"):
        kwargs["model"] = val

    if val := os.environ.get("PLANPAL_LLM_API_BASE"):
        kwargs["api_base"] = val

    if val := os.environ.get("PLANPAL_LLM_MODE"):
        if val in ("litellm", "static"):
            kwargs["llm_mode"] = val
        else:
            log.warning(
                "invalid_llm_mode_config",
                env_var="PLANPAL_LLM_MODE",
                value=val,
                fallback="litellm",
            )

    if (timeout := _read_int("PLANPAL_LLM_TIMEOUT_S", 30)) is not None:
        kwargs["timeout_s"] = timeout

    if (max_tokens := _read_int("PLANPAL_LLM_MAX_TOKENS", 400)) is not None:
        kwargs["max_tokens"] = max_tokens

    return ProviderConfig(**kwargs)
