"""IdentityResolver -- 作者资料缓存

按作者 ID 进程内缓存；Bot 哨兵与 Bot 资料直接映射为固定 Bot 身份，不发起请求。
查询失败只记录日志并返回 None，消息仍可展示（作者显示为未知）。
"""

from collections.abc import Awaitable, Callable

import structlog
from planpal.core.config import BOT_USERNAME
from planpal.core.models import Profile, bot_profile_for, is_bot_author

log = structlog.get_logger()

ProfileFetcher = Callable[[str], Awaitable[Profile | None]]

# observe() 合并时逐字段比较的字段
_MERGE_FIELDS = ("display_name", "avatar_url", "username")


def is_bot_profile(profile: Profile | None) -> bool:
    return profile is not None and (profile.is_bot or profile.username == BOT_USERNAME)


class IdentityResolver:
    """作者资料解析器"""

    def __init__(self, fetch_profile: ProfileFetcher) -> None:
        self._fetch_profile = fetch_profile
        self._cache: dict[str, Profile] = {}

    def cached(self, author_id: str) -> Profile | None:
        return self._cache.get(author_id)

    async def resolve(self, author_id: str | None) -> Profile | None:
        """解析作者资料

        Args:
            author_id: 作者 ID；Bot 作者（含预配置 ID）返回固定 Bot 资料

        Returns:
            Profile；不存在或查询失败时返回 None
        """
        if is_bot_author(author_id):
            return bot_profile_for(author_id)
        if (profile := self._cache.get(author_id)) is not None:
            return profile

        try:
            profile = await self._fetch_profile(author_id)
        except Exception as e:
            log.warning("profile_resolve_failed", author_id=author_id, error=str(e))
            return None
        if profile is None:
            return None
        return self.observe(profile)

    def observe(self, profile: Profile) -> Profile:
        """合并更新的资料：非空字段覆盖，空字段不覆盖已有值"""
        if is_bot_profile(profile):
            profile = bot_profile_for(profile.id)

        existing = self._cache.get(profile.id)
        if existing is not None:
            updates = {
                field: getattr(profile, field)
                for field in _MERGE_FIELDS
                if getattr(profile, field)
            }
            updates["is_bot"] = existing.is_bot or profile.is_bot
            profile = existing.model_copy(update=updates)

        self._cache[profile.id] = profile
        return profile
