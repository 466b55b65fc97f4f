"""MailboxReader — folder listing, search and fetch over supervised sessions."""

from __future__ import annotations

import structlog

from .errors import InvalidInput
from .imap_client import (
    PART_HEADERS,
    PART_TEXT,
    SEEN_FLAG,
    ImapSession,
    criteria_all,
    criteria_header,
)
from .models import Account, CanonicalMessage, RawRecord
from .normalizer import normalize
from .supervisor import ConnectionSupervisor

logger = structlog.get_logger()

CORRELATION_HEADER = "Message-ID"


class MailboxReader:
    """Read-side operations against one account's folders."""

    def __init__(self, supervisor: ConnectionSupervisor) -> None:
        self._supervisor = supervisor

    async def fetch(self, account: Account, folder: str, limit: int) -> list[CanonicalMessage]:
        """Return at most *limit* normalized messages from *folder*.

        Messages keep the order the server's SEARCH returned them in;
        nothing is re-sorted here.
        """
        if limit < 0:
            raise InvalidInput("limit must not be negative", details={"limit": limit})

        async with self._supervisor.acquire(account) as session:
            await self._supervisor.select_folder(session, folder)
            uids = await session.search(criteria_all())
            selected = uids[:limit]
            records = await session.fetch(selected, (PART_HEADERS, PART_TEXT)) if selected else []

        logger.info(
            "folder_fetched",
            account=account.address,
            folder=folder,
            total=len(uids),
            returned=len(records),
        )
        return [normalize(record) for record in records]

    async def search(self, account: Account, folder: str, correlation_id: str) -> RawRecord | None:
        """Find the record in *folder* whose Message-ID equals *correlation_id*."""
        async with self._supervisor.acquire(account) as session:
            await self._supervisor.select_folder(session, folder)
            return await self.lookup(session, correlation_id)

    async def lookup(self, session: ImapSession, correlation_id: str) -> RawRecord | None:
        """Correlation-id search on an already selected folder.

        More than one match means the folder is inconsistent; the lowest
        UID is chosen and a warning is logged.
        """
        uids = await session.search(criteria_header(CORRELATION_HEADER, correlation_id))
        if not uids:
            return None

        ordered = sorted(uids, key=int)
        if len(ordered) > 1:
            logger.warning(
                "draft_correlation_conflict",
                account=session.account.address,
                folder=session.selected_folder,
                correlation_id=correlation_id,
                matches=ordered,
                chosen=ordered[0],
            )

        records = await session.fetch(ordered[:1], (PART_HEADERS,))
        return records[0] if records else RawRecord(record_id=ordered[0])

    async def list_folders(self, account: Account) -> list[str]:
        async with self._supervisor.acquire(account) as session:
            return await session.list_folders()

    async def mark_as_read(self, account: Account, record_id: str, folder: str) -> None:
        async with self._supervisor.acquire(account) as session:
            await self._supervisor.select_folder(session, folder)
            await session.set_flag(record_id, SEEN_FLAG)
        logger.info("message_marked_read", account=account.address, folder=folder, record_id=record_id)
