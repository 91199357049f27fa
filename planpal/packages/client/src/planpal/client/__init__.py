"""PlanPal Client -- 群聊客户端同步层"""

from .api import ChatApiClient, ChatApiError, SendResult
from .attachments import AttachmentUploader, attachment_path, upload_attachment
from .broadcast import BroadcastChannel, BroadcastTransport
from .feed import ChangeFeedListener, FeedSource
from .identity import IdentityResolver
from .reconciler import ReconciliationEngine
from .session import ChatSession

__all__ = [
    "AttachmentUploader",
    "BroadcastChannel",
    "BroadcastTransport",
    "ChangeFeedListener",
    "ChatApiClient",
    "ChatApiError",
    "ChatSession",
    "FeedSource",
    "IdentityResolver",
    "ReconciliationEngine",
    "SendResult",
    "attachment_path",
    "upload_attachment",
]
