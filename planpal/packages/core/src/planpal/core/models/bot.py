"""Bot 流水线结果模型

流水线没有错误分支：生成失败时 response 为降级说明文本，
持久化失败时 message 为 None，success 恒为 True。
"""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from .enums import PipelineStage
from .message import ChatMessage


class BotActions(BaseModel):
    """从 Bot 回复中解析出的建议动作"""

    create_event: dict[str, Any] | None = None
    create_poll: dict[str, Any] | None = None

    @property
    def has_actions(self) -> bool:
        return self.create_event is not None or self.create_poll is not None


class ChatbotResult(BaseModel):
    """Bot 流水线返回值"""

    success: Literal[True] = True
    response: str = Field(description="生成文本或降级说明")
    message: ChatMessage | None = Field(default=None, description="已持久化的 Bot 消息")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    is_degraded: bool = Field(default=False, description="response 是否为降级文本")
    stages: list[PipelineStage] = Field(default_factory=list, description="已经过的阶段")
    actions: BotActions = Field(default_factory=BotActions)

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {
            "success": self.success,
            "response": self.response,
            "message": self.message.to_wire() if self.message else None,
            "timestamp": self.timestamp.isoformat(),
        }
        # 仅在解析出动作时附加
        if self.actions.has_actions:
            wire["actions"] = self.actions.model_dump(exclude_none=True)
        return wire
