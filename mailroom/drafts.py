"""DraftReconciler — draft create/update/delete on a store without in-place edits.

IMAP has no "replace message" command, so an update is two phases:

1. find the old draft by its Message-ID, flag it ``\\Deleted`` and close
   the folder with expunge;
2. submit a new draft that reuses the same Message-ID.

Phase 1 always completes before phase 2 starts, so a later search never
sees two records for one correlation id.  If phase 2 fails the draft is
gone, which is reported as ``ReconciliationPartialFailure``.

Concurrent updates of the *same* draft are not serialized here.
"""

from __future__ import annotations

from typing import Protocol

import structlog

from .errors import (
    TRANSPORT_ERRORS,
    DraftNotFound,
    InvalidInput,
    ReconciliationPartialFailure,
    classify_transport_error,
)
from .imap_client import DELETED_FLAG
from .mailbox import MailboxReader
from .models import Account, Attachment, DraftHandle, Envelope
from .smtp_client import render_message
from .supervisor import ConnectionSupervisor

logger = structlog.get_logger()


class Submitter(Protocol):
    async def submit(self, account: Account, envelope: Envelope) -> str: ...


class DraftReconciler:
    def __init__(
        self,
        supervisor: ConnectionSupervisor,
        reader: MailboxReader,
        submitter: Submitter,
        *,
        drafts_folder: str,
    ) -> None:
        self._supervisor = supervisor
        self._reader = reader
        self._submitter = submitter
        self._drafts_folder = drafts_folder

    async def create(
        self,
        account: Account,
        to: str,
        subject: str,
        body: str,
        attachment: Attachment | None = None,
    ) -> DraftHandle:
        envelope = self._draft_envelope(account, to, subject, body, attachment)
        try:
            correlation_id = await self._submitter.submit(account, envelope)
        except TRANSPORT_ERRORS as exc:
            raise classify_transport_error(exc) from exc

        logger.info("draft_created", account=account.address, correlation_id=correlation_id)
        return DraftHandle(correlation_id=correlation_id, to=to, subject=subject, body=body)

    async def update(
        self,
        account: Account,
        correlation_id: str,
        to: str,
        subject: str,
        body: str,
        attachment: Attachment | None = None,
    ) -> DraftHandle:
        """Replace the draft identified by *correlation_id*.

        Raises ``InvalidInput`` or ``DraftNotFound`` without touching the
        store when the new draft cannot be rendered or no draft carries
        that Message-ID.
        """
        envelope = self._draft_envelope(account, to, subject, body, attachment, correlation_id)

        await self.delete(account, correlation_id)

        try:
            new_id = await self._submitter.submit(account, envelope)
        except Exception as exc:
            # The old draft is already gone; nothing may escape untyped.
            cause = classify_transport_error(exc)
            logger.error(
                "draft_reconciliation_partial_failure",
                account=account.address,
                correlation_id=correlation_id,
                cause=cause.kind.value,
                error=str(exc) or type(exc).__name__,
            )
            raise ReconciliationPartialFailure(
                details={
                    "correlation_id": correlation_id,
                    "cause": cause.kind.value,
                    "error": cause.details.get("error", cause.message),
                },
            ) from exc

        logger.info("draft_updated", account=account.address, correlation_id=new_id)
        return DraftHandle(correlation_id=new_id, to=to, subject=subject, body=body)

    async def delete(self, account: Account, correlation_id: str) -> None:
        """Remove the draft's backing record, expunging before returning."""
        async with self._supervisor.acquire(account) as session:
            await self._supervisor.select_folder(session, self._drafts_folder)
            record = await self._reader.lookup(session, correlation_id)
            if record is None:
                raise DraftNotFound(details={"correlation_id": correlation_id})
            await session.set_flag(record.record_id, DELETED_FLAG)
            await self._supervisor.close_folder(session, expunge=True)

        logger.info(
            "draft_expunged",
            account=account.address,
            correlation_id=correlation_id,
            record_id=record.record_id,
        )

    @staticmethod
    def _draft_envelope(
        account: Account,
        to: str,
        subject: str,
        body: str,
        attachment: Attachment | None,
        correlation_id: str | None = None,
    ) -> Envelope:
        # Recipient and renderability are checked before anything is deleted.
        if not to:
            raise InvalidInput("A draft needs a recipient to be stored.", details={"missing": ["toEmail"]})
        envelope = Envelope(
            sender=account.address,
            to=to,
            subject=subject,
            body=body,
            attachment=attachment,
            draft=True,
            correlation_id=correlation_id,
        )
        render_message(envelope)
        return envelope
