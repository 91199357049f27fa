"""语言模型后端异常

流水线不会把这些异常交给路由层：FallbackManager 把它们转换为
DegradedReplyAdapter 的说明文本。
"""


class ProviderError(Exception):
    """后端调用失败；recoverable=False 表示降级链已用尽"""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        super().__init__(message)
        self.recoverable = recoverable


class ProviderNotConfiguredError(ProviderError):
    """缺少 API key 或处于 static 模式"""

    def __init__(self, message: str = "Language model API key is not configured") -> None:
        super().__init__(message)


class BackendUnreachableError(ProviderError):
    """连接失败、超时或 DNS 解析失败"""

    def __init__(self, endpoint: str, original_error: Exception) -> None:
        super().__init__(f"Language model backend unreachable: {endpoint} -- {original_error}")
        self.endpoint = endpoint
        self.original_error = original_error
