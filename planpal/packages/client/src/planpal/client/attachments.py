"""附件上传

对象路径为 {group_id}/{user_id}/{epoch_ms}.{ext}，存放在 chat-attachments bucket；
上传得到的公开 URL 随后作为 attachment 类型的消息发送。
"""

import mimetypes
from datetime import UTC, datetime
from typing import Protocol

import structlog
from planpal.core.config import ATTACHMENT_BUCKET
from planpal.core.exceptions import ChatValidationError

log = structlog.get_logger()


class AttachmentUploader(Protocol):
    """对象存储上传接口"""

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        """上传并返回公开 URL"""
        ...


def attachment_path(
    group_id: str,
    user_id: str,
    filename: str,
    now: datetime | None = None,
) -> str:
    ext = filename.rsplit(".", 1)[-1]
    epoch_ms = int((now or datetime.now(UTC)).timestamp() * 1000)
    return f"{group_id}/{user_id}/{epoch_ms}.{ext}"


async def upload_attachment(
    uploader: AttachmentUploader,
    group_id: str,
    user_id: str,
    filename: str,
    data: bytes,
    content_type: str | None = None,
    now: datetime | None = None,
) -> str:
    """上传附件，返回公开 URL

    Raises:
        ChatValidationError: 文件为空或上传未返回 URL
    """
    if not data:
        raise ChatValidationError("Attachment is empty", field="attachment")

    content_type = content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
    path = attachment_path(group_id, user_id, filename, now)
    url = await uploader.upload(path, data, content_type)
    if not url:
        raise ChatValidationError("Failed to get public URL", field="attachment")

    log.info(
        "attachment_uploaded",
        bucket=ATTACHMENT_BUCKET,
        path=path,
        size=len(data),
        content_type=content_type,
    )
    return url
