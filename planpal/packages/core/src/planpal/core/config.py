"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、聊天表变体、Bot 身份、分页与消息长度限制等可配置常量。
路径与 Bot 身份在每次调用时读取环境变量，便于测试覆盖。
"""

import os
from pathlib import Path


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("PLANPAL_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "PLANPAL_DB_PATH",
        str(_get_base_dir() / "sqlite" / "planpal.db"),
    )


def get_chat_tables() -> list[str]:
    """获取 init_db 需要创建的聊天表（逗号分隔）

    默认只创建 chat_messages（变体 A）。部署中只有 messages 表的旧库
    可设置为 "messages"，两者并存时设置为 "chat_messages,messages"。
    """
    raw = os.environ.get("PLANPAL_CHAT_TABLES", "chat_messages")
    return [name.strip() for name in raw.split(",") if name.strip()]


def get_bot_user_id() -> str | None:
    """获取预配置的 Bot 用户 ID，未配置返回 None"""
    return os.environ.get("PLANPAL_BOT_USER_ID") or None


# 消息正文最大长度（字符）
MESSAGE_MAX_LENGTH: int = 1000

# 分页默认值与上限
DEFAULT_PAGE_LIMIT: int = 50
MAX_PAGE_LIMIT: int = 100

# recent 接口时间窗口（小时）
RECENT_WINDOW_HOURS: int = int(os.environ.get("PLANPAL_RECENT_WINDOW_HOURS", "24"))

# Bot 上下文中最多携带的投票数
CONTEXT_POLL_LIMIT: int = 10

# Bot 上下文中最多携带的事件数
CONTEXT_EVENT_LIMIT: int = 20

# 保留的 Bot 用户名与展示身份
BOT_USERNAME: str = "planpal-bot"
BOT_DISPLAY_NAME: str = "🤖 PlanPal Bot"
BOT_EMAIL: str = "planpal-bot@system.local"

# 附件对象存储 bucket
ATTACHMENT_BUCKET: str = "chat-attachments"

# SSE 心跳间隔（秒）
SSE_HEARTBEAT_INTERVAL: int = int(
    os.environ.get("PLANPAL_SSE_HEARTBEAT_INTERVAL", "15")
)

# 日志中消息预览截断长度
MESSAGE_PREVIEW_LENGTH: int = 100

# 推送流在订阅建立后发出的首个状态值
STREAM_SUBSCRIBED: str = "SUBSCRIBED"
