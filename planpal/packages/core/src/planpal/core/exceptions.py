"""聊天子系统异常体系

ChatValidationError -> 400，AuthenticationError -> 401，AuthorizationError -> 403/404，
UpstreamError -> 普通聊天接口 500；Bot 流水线吸收所有 UpstreamError。
"""


class PlanPalError(Exception):
    """基础异常"""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ChatValidationError(PlanPalError):
    """输入形态或长度不合法"""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class AuthorizationError(PlanPalError):
    """无权访问群组"""

    code = "ACCESS_DENIED"
    status_code = 403


class GroupNotFoundError(AuthorizationError):
    """群组不存在（或已删除）"""

    code = "GROUP_NOT_FOUND"
    status_code = 404

    def __init__(self, group_id: str) -> None:
        super().__init__("Group not found")
        self.group_id = group_id


class NotGroupMemberError(AuthorizationError):
    """用户不是群组成员"""

    def __init__(self, group_id: str, user_id: str) -> None:
        super().__init__("Access denied")
        self.group_id = group_id
        self.user_id = user_id


class UpstreamError(PlanPalError):
    """存储层或语言模型后端失败"""


class StoreError(UpstreamError):
    """存储层失败 -- 对外只暴露通用描述"""


class SchemaDivergenceError(StoreError):
    """两种聊天表变体均不可用"""

    def __init__(self, message: str = "No usable chat table variant") -> None:
        super().__init__(message)


class AuthenticationError(PlanPalError):
    """请求未携带有效身份"""

    code = "UNAUTHORIZED"
    status_code = 401
