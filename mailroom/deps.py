"""FastAPI dependency-injection helpers."""

from __future__ import annotations

from fastapi import Request, UploadFile

from .models import Attachment
from .service import MailService


def get_service(request: Request) -> MailService:
    return request.app.state.service


async def read_attachment(upload: UploadFile | None) -> Attachment | None:
    """Buffer an uploaded file in memory as an :class:`Attachment`."""
    if upload is None or not upload.filename:
        return None
    content = await upload.read()
    return Attachment(
        filename=upload.filename,
        content=content,
        content_type=upload.content_type or "application/octet-stream",
    )
