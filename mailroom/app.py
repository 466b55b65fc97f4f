"""FastAPI application factory."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Annotated

import structlog
from fastapi import Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import MailroomConfig
from .deps import get_service, read_attachment
from .errors import InvalidInput, MailroomError
from .service import MailService

logger = structlog.get_logger()

Service = Annotated[MailService, Depends(get_service)]


class MarkAsReadRequest(BaseModel):
    email: str | None = None
    messageId: str | None = None
    folder: str = "INBOX"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: build the mail service if none was injected. Shutdown: stop it."""
    if getattr(app.state, "service", None) is None:
        app.state.service = MailService(app.state.config)
    logger.info("mailroom_started", accounts=app.state.service.gate.addresses)
    yield
    await app.state.service.shutdown()
    logger.info("shutdown_complete")


def _emails(messages) -> list[dict]:
    return [m.model_dump(by_alias=True) for m in messages]


def create_app(config: MailroomConfig | None = None, service: MailService | None = None) -> FastAPI:
    """Build and return the FastAPI application."""
    if config is None:
        config = MailroomConfig()

    app = FastAPI(title="Mailroom", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.service = service

    @app.exception_handler(MailroomError)
    async def mailroom_error_handler(request: Request, exc: MailroomError) -> JSONResponse:
        logger.warning(
            "request_failed",
            path=request.url.path,
            kind=exc.kind.value,
            error=exc.message,
        )
        return JSONResponse(
            status_code=exc.http_status,
            content={"success": False, "error": exc.to_dict()},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
        return await mailroom_error_handler(request, InvalidInput(details={"fields": fields}))

    # ------------------------------------------------------------------
    # Submission and drafts
    # ------------------------------------------------------------------

    @app.post("/send-email")
    async def send_email(
        service: Service,
        fromEmail: Annotated[str | None, Form()] = None,
        toEmail: Annotated[str | None, Form()] = None,
        subject: Annotated[str | None, Form()] = None,
        message: Annotated[str | None, Form()] = None,
        attachment: Annotated[UploadFile | None, File()] = None,
    ):
        message_id = await service.send(
            fromEmail, toEmail, subject, message, await read_attachment(attachment),
        )
        return {"success": True, "message": "Email sent successfully!", "messageId": message_id}

    @app.post("/save-draft")
    async def save_draft(
        service: Service,
        fromEmail: Annotated[str | None, Form()] = None,
        toEmail: Annotated[str | None, Form()] = None,
        subject: Annotated[str | None, Form()] = None,
        message: Annotated[str | None, Form()] = None,
        attachment: Annotated[UploadFile | None, File()] = None,
    ):
        handle = await service.create_draft(
            fromEmail, toEmail, subject, message, await read_attachment(attachment),
        )
        return {"success": True, "message": "Draft saved successfully!", "draftId": handle.correlation_id}

    @app.put("/update-draft/{draft_id}")
    async def update_draft(
        draft_id: str,
        service: Service,
        fromEmail: Annotated[str | None, Form()] = None,
        toEmail: Annotated[str | None, Form()] = None,
        subject: Annotated[str | None, Form()] = None,
        message: Annotated[str | None, Form()] = None,
        attachment: Annotated[UploadFile | None, File()] = None,
    ):
        handle = await service.update_draft(
            fromEmail, draft_id, toEmail, subject, message, await read_attachment(attachment),
        )
        return {"success": True, "message": "Draft updated successfully!", "draftId": handle.correlation_id}

    @app.delete("/drafts/{draft_id}")
    async def delete_draft(draft_id: str, service: Service, email: str | None = Query(default=None)):
        await service.delete_draft(email, draft_id)
        return {"success": True, "message": "Draft deleted."}

    # ------------------------------------------------------------------
    # Folders
    # ------------------------------------------------------------------

    @app.get("/fetch-folder")
    async def fetch_folder(
        service: Service,
        email: str | None = Query(default=None),
        folder: str = Query(default="INBOX"),
        limit: int | None = Query(default=None),
    ):
        return {"success": True, "emails": _emails(await service.fetch_folder(email, folder, limit))}

    @app.get("/fetch-inbox-emails")
    async def fetch_inbox(service: Service, email: str | None = Query(default=None)):
        messages = await service.fetch_folder(email, service.folders.inbox)
        return {"success": True, "emails": _emails(messages)}

    @app.get("/fetch-sent-emails")
    async def fetch_sent(service: Service, email: str | None = Query(default=None)):
        messages = await service.fetch_folder(email, service.folders.sent)
        return {"success": True, "emails": _emails(messages)}

    @app.get("/fetch-drafts")
    async def fetch_drafts(service: Service, email: str | None = Query(default=None)):
        messages = await service.fetch_folder(email, service.folders.drafts)
        return {"success": True, "emails": _emails(messages)}

    @app.get("/list-mailboxes")
    async def list_mailboxes(service: Service, email: str | None = Query(default=None)):
        return {"success": True, "mailboxes": await service.list_folders(email)}

    @app.post("/mark-as-read")
    async def mark_as_read(body: MarkAsReadRequest, service: Service):
        await service.mark_as_read(body.email, body.messageId, body.folder)
        return {"success": True, "message": "Email marked as read."}

    @app.get("/search-emails")
    async def search_emails(
        service: Service,
        email: str | None = Query(default=None),
        query: str | None = Query(default=None),
        folder: str = Query(default="INBOX"),
    ):
        messages = await service.search_folder(email, folder, query)
        return {"success": True, "emails": _emails(messages)}

    @app.get("/health")
    async def health(service: Service):
        return {"status": "ok", "service": "mailroom", "sessions": service.session_states()}

    return app
