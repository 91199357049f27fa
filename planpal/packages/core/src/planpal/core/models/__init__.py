"""PlanPal Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .bot import BotActions, ChatbotResult
from .enums import PIPELINE_ORDER, MessageKind, PipelineStage, SchemaVariant
from .group import Group, GroupContext, GroupEvent, GroupPoll, GroupSummary
from .message import (
    BOT_PROFILE,
    BOT_SENTINEL,
    ChatMessage,
    MessagePage,
    Profile,
    bot_profile_for,
    extract_bot_query,
    is_bot_author,
    is_bot_query,
)

__all__ = [
    # 枚举
    "MessageKind",
    "SchemaVariant",
    "PipelineStage",
    "PIPELINE_ORDER",
    # 消息
    "ChatMessage",
    "MessagePage",
    "Profile",
    "BOT_PROFILE",
    "BOT_SENTINEL",
    "bot_profile_for",
    "extract_bot_query",
    "is_bot_author",
    "is_bot_query",
    # 群组
    "Group",
    "GroupContext",
    "GroupEvent",
    "GroupPoll",
    "GroupSummary",
    # Bot
    "ChatbotResult",
    "BotActions",
]
