"""客户端配置 -- 可通过环境变量覆盖"""

import os

# 本地开发时的网关地址
DEFAULT_API_URL = "http://localhost:8000"


def get_api_url() -> str:
    """获取网关基础 URL"""
    return os.environ.get("PLANPAL_API_URL", DEFAULT_API_URL).rstrip("/")


# REST 请求超时（秒）；SSE 长连接不设读超时
REQUEST_TIMEOUT_S: float = 10.0

# 推送流断开后的重连间隔（秒）
STREAM_RETRY_DELAY_S: float = float(os.environ.get("PLANPAL_STREAM_RETRY_DELAY_S", "2"))
