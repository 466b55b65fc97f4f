"""MailService — the four public operations plus folder utilities.

Validation and authorization run first and fail fast; no network
resource is touched for a request that fails either.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from .auth import AuthorizationGate
from .config import FolderConfig, MailroomConfig
from .drafts import DraftReconciler, Submitter
from .errors import TRANSPORT_ERRORS, InvalidInput, classify_transport_error
from .imap_client import AsyncImapClient
from .mailbox import MailboxReader
from .models import Attachment, CanonicalMessage, DraftHandle, Envelope
from .retry import ReconnectPolicy, SleepFn
from .smtp_client import SubmissionClient, render_message
from .supervisor import ConnectionSupervisor, SessionFactory

logger = structlog.get_logger()


def _require(**fields: Any) -> None:
    missing = [name for name, value in fields.items() if not value]
    if missing:
        raise InvalidInput(details={"missing": missing})


class MailService:
    """Compose the gate, supervisor, reader and reconciler for one process."""

    def __init__(
        self,
        config: MailroomConfig,
        *,
        imap_client: SessionFactory | None = None,
        submitter: Submitter | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._config = config
        timeout = config.supervisor.operation_timeout_seconds

        self.gate = AuthorizationGate(config.accounts)
        self.supervisor = ConnectionSupervisor(
            imap_client or AsyncImapClient(config.imap, timeout=timeout),
            ReconnectPolicy.from_config(config.supervisor),
            accounts=[self.gate.authorize(a) for a in self.gate.addresses],
            sleep=sleep,
        )
        self.reader = MailboxReader(self.supervisor)
        self.submitter = submitter or SubmissionClient(config.smtp, timeout=timeout)
        self.drafts = DraftReconciler(
            self.supervisor,
            self.reader,
            self.submitter,
            drafts_folder=config.folders.drafts,
        )

    @property
    def folders(self) -> FolderConfig:
        return self._config.folders

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def send(
        self,
        sender: str | None,
        to: str | None,
        subject: str | None,
        body: str | None,
        attachment: Attachment | None = None,
    ) -> str:
        _require(fromEmail=sender, toEmail=to, subject=subject, message=body)
        account = self.gate.authorize(sender)
        envelope = Envelope(sender=account.address, to=to, subject=subject, body=body, attachment=attachment)
        render_message(envelope)
        try:
            return await self.submitter.submit(account, envelope)
        except TRANSPORT_ERRORS as exc:
            error = classify_transport_error(exc)
            logger.error("email_send_failed", sender=account.address, kind=error.kind.value, error=str(exc))
            raise error from exc

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    async def create_draft(
        self,
        sender: str | None,
        to: str | None = None,
        subject: str | None = None,
        body: str | None = None,
        attachment: Attachment | None = None,
    ) -> DraftHandle:
        _require(fromEmail=sender)
        account = self.gate.authorize(sender)
        return await self.drafts.create(account, to or "", subject or "", body or "", attachment)

    async def update_draft(
        self,
        sender: str | None,
        draft_id: str | None,
        to: str | None = None,
        subject: str | None = None,
        body: str | None = None,
        attachment: Attachment | None = None,
    ) -> DraftHandle:
        _require(fromEmail=sender, draftId=draft_id)
        account = self.gate.authorize(sender)
        return await self.drafts.update(account, draft_id, to or "", subject or "", body or "", attachment)

    async def delete_draft(self, sender: str | None, draft_id: str | None) -> None:
        _require(fromEmail=sender, draftId=draft_id)
        account = self.gate.authorize(sender)
        await self.drafts.delete(account, draft_id)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def fetch_folder(self, address: str | None, folder: str, limit: int | None = None) -> list[CanonicalMessage]:
        account = self.gate.authorize(address)
        _require(folder=folder)
        if limit is None:
            limit = self._config.folders.default_limit
        return await self.reader.fetch(account, folder, limit)

    async def search_folder(
        self,
        address: str | None,
        folder: str,
        query: str | None,
        limit: int | None = None,
    ) -> list[CanonicalMessage]:
        """Fetch *folder* and keep messages whose subject or sender contains *query*."""
        _require(query=query)
        messages = await self.fetch_folder(address, folder, limit)
        return [m for m in messages if query in m.subject or query in m.from_]

    async def list_folders(self, address: str | None) -> list[str]:
        account = self.gate.authorize(address)
        return await self.reader.list_folders(account)

    async def mark_as_read(self, address: str | None, record_id: str | None, folder: str | None = None) -> None:
        account = self.gate.authorize(address)
        _require(messageId=record_id)
        await self.reader.mark_as_read(account, record_id, folder or self._config.folders.inbox)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def session_states(self) -> dict[str, dict[str, Any]]:
        return self.supervisor.snapshot()

    async def shutdown(self) -> None:
        await self.supervisor.shutdown()
