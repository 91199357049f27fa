"""Group 相关模型 -- 成员校验与 Bot 上下文

群组/事件/投票的增删改由外部系统负责，这里只定义聊天子系统读取的形态。
"""

from datetime import datetime

from pydantic import BaseModel, Field


class Group(BaseModel):
    """群组（只读视图）"""

    id: str
    name: str = ""
    description: str = ""
    group_type: str = "personal"
    members: list[str] = Field(default_factory=list, description="成员用户 ID 列表")

    def is_member(self, user_id: str) -> bool:
        return user_id in self.members


class GroupEvent(BaseModel):
    """群组事件"""

    id: str
    group_id: str
    title: str
    description: str = ""
    date_time: datetime | None = None


class GroupPoll(BaseModel):
    """投票摘要"""

    id: str
    event_id: str
    question: str
    option_count: int = Field(default=0, ge=0)


class GroupSummary(BaseModel):
    """Bot 提示词使用的群组描述信息"""

    name: str = "Unknown Group"
    description: str = "No description"
    group_type: str = "personal"
    member_count: int = Field(default=0, ge=0)


class GroupContext(BaseModel):
    """Bot 上下文 -- 任一部分获取失败时使用默认值"""

    group: GroupSummary = Field(default_factory=GroupSummary)
    events: list[GroupEvent] = Field(default_factory=list)
    polls: list[GroupPoll] = Field(default_factory=list)
