"""ChatbotService -- Bot 响应流水线

每次调用依次经过 RECEIVED -> CONTEXT_GATHERED -> GENERATED -> PERSISTED -> RETURNED，
每个阶段都有降级路径，run() 与 generate_chatbot_response() 永不向调用方抛异常：
- 上下文任一部分获取失败 -> 该部分使用默认值
- 后端未配置或失败 -> DegradedReplyAdapter 的说明文本（视为合法生成结果）
- 持久化失败 -> 记录日志，返回结果中 message 为 None
"""

import json
import re
import uuid
from typing import Any

import structlog
from planpal.core.config import (
    BOT_DISPLAY_NAME,
    BOT_EMAIL,
    BOT_USERNAME,
    CONTEXT_EVENT_LIMIT,
    CONTEXT_POLL_LIMIT,
    MESSAGE_MAX_LENGTH,
    get_bot_user_id,
)
from planpal.core.models import (
    BOT_SENTINEL,
    BotActions,
    ChatbotResult,
    ChatMessage,
    GroupContext,
    GroupSummary,
    MessageKind,
    PipelineStage,
    Profile,
)
from planpal.core.store import StoreGroup
from planpal.core.store.schema import to_row
from planpal.provider import FallbackManager, degraded_reply_for

from .feed_hub import ChangeFeedHub

log = structlog.get_logger()

UNEXPECTED_ERROR_REPLY = (
    "Sorry, I encountered an unexpected error. "
    "Please try again or contact support if the issue persists."
)

# 提示词中单条描述的最大长度
_DESCRIPTION_MAX_CHARS = 200

_ACTION_RE = {
    "create_event": re.compile(r"CREATE_EVENT:\s*(\{[^}]+\})", re.IGNORECASE),
    "create_poll": re.compile(r"CREATE_POLL:\s*(\{[^}]+\})", re.IGNORECASE),
}

_SYSTEM_PROMPT = """You are the AI assistant for PlanPal, a group planning app.
You help groups plan outings, create events, manage polls, and suggest activities.

**Group Information:**
- Group Name: {name}
- Description: {description}
- Type: {group_type}
- Members: {member_count}

**Current Events:**
{events}

**Active Polls:**
{polls}

**Your Capabilities:**
1. Answer questions about this group's events, polls, and activities
2. Suggest movies based on mood and preferences
3. Suggest places to visit (restaurants, cafes, parks, etc.)
4. Help draft event ideas and poll questions

**Restrictions:**
- ONLY respond to queries about group planning, events, polls, movies, places, and activities
- Do NOT answer general knowledge questions unrelated to the group
- If asked something unrelated, politely redirect to group-related topics

**Response Guidelines:**
- Be concise and helpful (max 200 words)
- If suggesting movies, mention 2-3 specific titles with brief descriptions
- If the group clearly wants to create an event or poll, you may end with a single line
  CREATE_EVENT: {{"title": ..., "date_time": ...}} or CREATE_POLL: {{"question": ..., "options": [...]}}"""


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def build_prompt_messages(context: GroupContext, query: str) -> list[dict[str, str]]:
    """构建有界的提示词

    Args:
        context: 群组上下文
        query: 用户查询

    Returns:
        [system, user] 两条消息
    """
    if context.events:
        events = "\n".join(
            f"- {e.title} on {e.date_time.date().isoformat() if e.date_time else 'TBD'}: "
            f"{_truncate(e.description or 'No description', _DESCRIPTION_MAX_CHARS)}"
            for e in context.events[:CONTEXT_EVENT_LIMIT]
        )
    else:
        events = "No upcoming events"

    if context.polls:
        polls = "\n".join(
            f"- {p.question} ({p.option_count} options)"
            for p in context.polls[:CONTEXT_POLL_LIMIT]
        )
    else:
        polls = "No active polls"

    system = _SYSTEM_PROMPT.format(
        name=context.group.name,
        description=_truncate(context.group.description, _DESCRIPTION_MAX_CHARS),
        group_type=context.group.group_type,
        member_count=context.group.member_count,
        events=events,
        polls=polls,
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": _truncate(query, MESSAGE_MAX_LENGTH)},
    ]


def parse_actions(response: str) -> BotActions:
    """解析回复中的 CREATE_EVENT / CREATE_POLL 指令，格式错误时忽略"""
    found: dict[str, Any] = {}
    for field, pattern in _ACTION_RE.items():
        match = pattern.search(response)
        if match is None:
            continue
        try:
            found[field] = json.loads(match.group(1))
        except json.JSONDecodeError as e:
            log.warning("bot_action_parse_failed", action=field, error=str(e))
    return BotActions(**found)


class ChatbotService:
    """Bot 响应流水线"""

    def __init__(
        self,
        store_group: StoreGroup,
        fallback_manager: FallbackManager | None,
        feed_hub: ChangeFeedHub | None = None,
        bot_user_id: str | None = None,
    ) -> None:
        """
        Args:
            store_group: Store 实例组
            fallback_manager: 生成器降级链，None 时始终使用说明文本
            feed_hub: 变更推送，持久化后发布插入通知
            bot_user_id: 预配置的 Bot 用户 ID，None 时读取 PLANPAL_BOT_USER_ID
        """
        self._stores = store_group
        self._fallback_manager = fallback_manager
        self._feed_hub = feed_hub
        self._bot_user_id = bot_user_id
        self._resolved_bot_id: str | None = None

    async def gather_context(self, group_id: str) -> GroupContext:
        """获取群组上下文；每一部分独立降级，不抛异常"""
        summary = GroupSummary()
        try:
            group = await self._stores.group_store.get_group(group_id)
            if group is None:
                log.warning("bot_context_group_missing", group_id=group_id)
            else:
                summary = GroupSummary(
                    name=group.name or "Group",
                    description=group.description or "No description",
                    group_type=group.group_type or "personal",
                    member_count=len(group.members),
                )
        except Exception as e:
            log.error("bot_context_group_failed", group_id=group_id, error=str(e))

        events = []
        try:
            events = await self._stores.group_store.list_events(group_id)
        except Exception as e:
            log.error("bot_context_events_failed", group_id=group_id, error=str(e))

        polls = []
        try:
            polls = await self._stores.group_store.list_polls([e.id for e in events])
        except Exception as e:
            log.error("bot_context_polls_failed", group_id=group_id, error=str(e))

        return GroupContext(group=summary, events=events, polls=polls)

    async def _generate(self, context: GroupContext, query: str) -> tuple[str, bool]:
        """调用生成器，返回 (文本, 是否降级)"""
        messages = build_prompt_messages(context, query)
        if self._fallback_manager is None:
            return degraded_reply_for(None), True
        try:
            result = await self._fallback_manager.call_with_fallback(messages)
        except Exception as e:
            log.error("bot_generation_failed", error=str(e), error_type=type(e).__name__)
            return degraded_reply_for(e), True

        if not result.content.strip():
            log.warning("bot_generation_empty", model=result.model_name)
            return degraded_reply_for(None), True
        return result.content, result.is_fallback

    async def generate_chatbot_response(
        self,
        group_id: str,
        query: str,
        user_id: str | None = None,
    ) -> str:
        """生成回复文本，永不抛异常"""
        try:
            context = await self.gather_context(group_id)
            text, _ = await self._generate(context, query)
            return text
        except Exception as e:
            log.error(
                "bot_response_unexpected_error",
                group_id=group_id,
                user_id=user_id,
                error=str(e),
            )
            return UNEXPECTED_ERROR_REPLY

    async def resolve_bot_author(self) -> str:
        """解析 Bot 作者 ID

        顺序：预配置常量 -> 保留用户名的已有资料 -> 新建资料。
        新建依赖 profiles.username 唯一索引，并发创建时返回胜出的一行。
        """
        if configured := (self._bot_user_id or get_bot_user_id()):
            return configured
        if self._resolved_bot_id:
            return self._resolved_bot_id

        profiles = self._stores.profile_store
        existing = await profiles.get_profile_id_by_username(BOT_USERNAME)
        if existing is None:
            existing = await profiles.create_profile(
                Profile(
                    id=str(uuid.uuid4()),
                    display_name=BOT_DISPLAY_NAME,
                    username=BOT_USERNAME,
                    is_bot=True,
                ),
                email=BOT_EMAIL,
            )
            log.info("bot_profile_created", bot_user_id=existing)

        self._resolved_bot_id = existing
        return existing

    async def persist_reply(
        self,
        group_id: str,
        text: str,
        kind: MessageKind = MessageKind.TEXT,
    ) -> ChatMessage | None:
        """持久化 Bot 回复；失败时记录日志并返回 None"""
        try:
            author_id = await self.resolve_bot_author()
        except Exception as e:
            log.error("bot_identity_failed", group_id=group_id, error=str(e))
            author_id = BOT_SENTINEL

        try:
            store = self._stores.message_store
            variant = await store.detect_variant()
            message = await store.send(
                group_id,
                author_id,
                _truncate(text, MESSAGE_MAX_LENGTH),
                kind,
                variant=variant,
            )
        except Exception as e:
            log.error("bot_persist_failed", group_id=group_id, error=str(e))
            return None

        if self._feed_hub is not None:
            await self._feed_hub.publish_insert(group_id, variant, to_row(message, variant))
        return message

    async def run(self, group_id: str, query: str, user_id: str | None = None) -> ChatbotResult:
        """执行完整流水线，永不抛异常"""
        stages: list[PipelineStage] = []

        def advance(stage: PipelineStage, **kw) -> None:
            stages.append(stage)
            log.info("chatbot_stage", stage=stage.value, group_id=group_id, **kw)

        try:
            advance(PipelineStage.RECEIVED, user_id=user_id, query_length=len(query))

            context = await self.gather_context(group_id)
            advance(
                PipelineStage.CONTEXT_GATHERED,
                events=len(context.events),
                polls=len(context.polls),
            )

            text, degraded = await self._generate(context, query)
            advance(PipelineStage.GENERATED, degraded=degraded)

            message = await self.persist_reply(group_id, text)
            advance(PipelineStage.PERSISTED, message_id=message.id if message else None)

            advance(PipelineStage.RETURNED)
            return ChatbotResult(
                response=text,
                message=message,
                is_degraded=degraded,
                stages=stages,
                actions=parse_actions(text),
            )
        except Exception as e:
            log.error("chatbot_pipeline_unexpected_error", group_id=group_id, error=str(e))
            return unavailable_result(stages)


def unavailable_result(stages: list[PipelineStage] | None = None) -> ChatbotResult:
    """流水线无法继续时的 200 结果：通用说明文本，无持久化消息"""
    return ChatbotResult(
        response=UNEXPECTED_ERROR_REPLY,
        message=None,
        is_degraded=True,
        stages=stages or [],
    )
