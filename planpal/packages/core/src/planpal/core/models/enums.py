"""枚举定义 -- 消息类型、聊天表变体、Bot 流水线阶段"""

from enum import StrEnum


class MessageKind(StrEnum):
    """消息类型"""

    TEXT = "text"
    SYSTEM = "system"
    BOT_QUERY = "bot_query"
    ATTACHMENT = "attachment"
    # REST 入口额外接受的类型
    IMAGE = "image"


class SchemaVariant(StrEnum):
    """聊天表变体 -- 值即表名

    CHAT_MESSAGES（变体 A）: message + message_type 列
    MESSAGES（变体 B）: content + attachment_url 列，无类型列
    """

    CHAT_MESSAGES = "chat_messages"
    MESSAGES = "messages"


class PipelineStage(StrEnum):
    """Bot 响应流水线阶段"""

    RECEIVED = "RECEIVED"
    CONTEXT_GATHERED = "CONTEXT_GATHERED"
    GENERATED = "GENERATED"
    PERSISTED = "PERSISTED"
    RETURNED = "RETURNED"


# 阶段推进顺序
PIPELINE_ORDER: tuple[PipelineStage, ...] = (
    PipelineStage.RECEIVED,
    PipelineStage.CONTEXT_GATHERED,
    PipelineStage.GENERATED,
    PipelineStage.PERSISTED,
    PipelineStage.RETURNED,
)
