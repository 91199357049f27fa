"""PlanPal Provider -- 语言模型调用抽象层

packages/provider 的公开接口导出。
"""

# 核心组件
from .client import LiteLLMClient

# 配置
from .config import ProviderConfig, load_provider_config
from .degraded_adapter import DegradedReplyAdapter, degraded_reply_for

# 异常
from .exceptions import BackendUnreachableError, ProviderError, ProviderNotConfiguredError
from .fallback import FallbackManager

# 数据模型
from .models import ModelCallResult, TokenUsage

__all__ = [
    "ModelCallResult",
    "TokenUsage",
    "LiteLLMClient",
    "FallbackManager",
    "DegradedReplyAdapter",
    "degraded_reply_for",
    "ProviderConfig",
    "load_provider_config",
    "ProviderError",
    "ProviderNotConfiguredError",
    "BackendUnreachableError",
]
